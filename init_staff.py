#!/usr/bin/env python3
"""
Initialize default staff accounts for the clinic system.
Run with: python3 init_staff.py
"""
from clinic_app import create_app
from clinic_app.extensions import db
from clinic_app.models import Staff
from clinic_app.utils.schedule import dump_schedule, validate_schedule

WEEKDAY_HOURS = {day: {'working': True, 'start': '09:00', 'end': '17:00'}
                 for day in ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday')}
WEEKDAY_HOURS['Saturday'] = {'working': True, 'start': '09:00', 'end': '13:00'}
WEEKDAY_HOURS['Sunday'] = {'working': False}

# Default staff accounts to create
DEFAULT_STAFF = [
    {
        'username': 'admin',
        'email': 'admin@clinic.com',
        'password': 'admin123',
        'first_name': 'System',
        'last_name': 'Admin',
        'role': 'admin',
    },
    {
        'username': 'doctor1',
        'email': 'doctor1@clinic.com',
        'password': 'doctor123',
        'first_name': 'John',
        'last_name': 'Smith',
        'role': 'doctor',
        'specialization': 'General Medicine',
        'schedule': WEEKDAY_HOURS,
    },
    {
        'username': 'receptionist1',
        'email': 'receptionist1@clinic.com',
        'password': 'recep123',
        'first_name': 'Bob',
        'last_name': 'Reception',
        'role': 'receptionist',
    },
    {
        'username': 'accountant1',
        'email': 'accountant1@clinic.com',
        'password': 'account123',
        'first_name': 'Alice',
        'last_name': 'Ledger',
        'role': 'accountant',
    },
]


def create_staff():
    """Create default staff accounts"""
    app = create_app()

    with app.app_context():
        db.create_all()

        print("=" * 60)
        print("Initializing Staff Accounts")
        print("=" * 60)
        print()

        created_count = 0

        for staff_data in DEFAULT_STAFF:
            username = staff_data['username']

            existing = Staff.query.filter_by(username=username).first()
            if existing:
                print(f"  - Staff '{username}' already exists (skipping)")
                continue

            staff = Staff(
                username=username,
                email=staff_data['email'],
                first_name=staff_data['first_name'],
                last_name=staff_data['last_name'],
                role=staff_data['role'],
                specialization=staff_data.get('specialization'),
                is_active=True
            )
            if staff_data.get('schedule'):
                staff.schedule = dump_schedule(validate_schedule(staff_data['schedule']))
            staff.set_password(staff_data['password'])

            db.session.add(staff)
            created_count += 1
            print(f"  Created: {username} ({staff_data['role']}) - Password: {staff_data['password']}")

        db.session.commit()

        print()
        print("=" * 60)
        print(f"Created {created_count} new staff account(s)")
        print("=" * 60)
        print("\nIMPORTANT: Change passwords after first login!")


if __name__ == '__main__':
    create_staff()
