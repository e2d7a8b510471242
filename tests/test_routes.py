import pytest

from clinic_app.services import notifications


def _booking(patient, doctor, day, time='10:00'):
    return {
        'patient_id': patient.id,
        'doctor_id': doctor.id,
        'appointment_date': day.isoformat(),
        'appointment_time': time,
    }


BILL = {
    'items': [
        {'service_type': 'Consultation', 'description': 'Consultation', 'unit_price': 100, 'quantity': 2},
        {'service_type': 'Lab Test', 'description': 'Blood panel', 'unit_price': 50, 'quantity': 1},
    ],
    'discount': 20,
    'tax': 10,
}


class TestAuth:

    def test_login(self, client, admin):
        response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret123'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['access_token']
        assert body['data']['role'] == 'admin'

    def test_login_wrong_password(self, client, admin):
        response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})

        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'error': 'Invalid username or password'}

    def test_login_token_opens_me(self, client, doctor):
        token = client.post(
            '/api/auth/login', json={'username': 'drhouse', 'password': 'secret123'}
        ).get_json()['access_token']

        response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['username'] == 'drhouse'
        assert data['schedule']['Monday']['start'] == '09:00'

    def test_missing_token(self, client):
        response = client.get('/api/appointments')

        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_wrong_role(self, client, auth_headers, nurse, patient, doctor, monday):
        response = client.post('/api/appointments', json=_booking(patient, doctor, monday),
                               headers=auth_headers(nurse))

        assert response.status_code == 403
        assert response.get_json()['success'] is False


class TestAppointmentRoutes:

    def test_book_then_double_book(self, client, auth_headers, receptionist, patient, doctor, monday):
        headers = auth_headers(receptionist)

        first = client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)
        second = client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)

        assert first.status_code == 201
        assert first.get_json()['data']['appointment_number'] == 'APT0001'
        assert first.get_json()['data']['appointment_time'] == '10:00:00'
        assert second.status_code == 409
        assert second.get_json() == {'success': False, 'error': 'Time slot already booked'}

    def test_booking_survives_a_failing_notification(self, client, auth_headers, receptionist, patient,
                                                     doctor, monday, monkeypatch):
        def broken_builder(appointment):
            raise AttributeError('patient')
        monkeypatch.setattr(notifications, 'appointment_booked', broken_builder)

        response = client.post('/api/appointments', json=_booking(patient, doctor, monday),
                               headers=auth_headers(receptionist))

        assert response.status_code == 201
        assert response.get_json()['data']['appointment_number'] == 'APT0001'

    def test_invalid_date(self, client, auth_headers, receptionist, patient, doctor):
        data = {
            'patient_id': patient.id,
            'doctor_id': doctor.id,
            'appointment_date': '2024-13-40',
            'appointment_time': '10:00',
        }

        response = client.post('/api/appointments', json=data, headers=auth_headers(receptionist))

        assert response.status_code == 400

    def test_available_slots_reflect_bookings(self, client, auth_headers, receptionist, patient, doctor, monday):
        headers = auth_headers(receptionist)
        client.post('/api/appointments', json=_booking(patient, doctor, monday, '09:30'), headers=headers)

        response = client.get(
            f'/api/appointments/slots/available?doctor_id={doctor.id}&date={monday.isoformat()}',
            headers=headers,
        )

        slots = response.get_json()['data']['available_slots']
        assert len(slots) == 15
        assert '09:30:00' not in slots

    def test_cancel_frees_slot(self, client, auth_headers, receptionist, patient, doctor, monday):
        headers = auth_headers(receptionist)
        booked = client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)
        appointment_id = booked.get_json()['data']['id']

        cancelled = client.delete(f'/api/appointments/{appointment_id}', json={'reason': 'Travel'},
                                  headers=headers)
        again = client.delete(f'/api/appointments/{appointment_id}', headers=headers)
        rebooked = client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)

        assert cancelled.get_json()['data']['status'] == 'Cancelled'
        assert again.status_code == 409
        assert rebooked.status_code == 201

    def test_doctor_sees_own_appointments(self, client, auth_headers, receptionist, patient,
                                          doctor, other_doctor, monday):
        headers = auth_headers(receptionist)
        client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)
        client.post('/api/appointments', json=_booking(patient, other_doctor, monday), headers=headers)

        response = client.get('/api/appointments', headers=auth_headers(other_doctor))

        body = response.get_json()
        assert body['pagination']['total'] == 1
        assert body['data'][0]['doctor_id'] == other_doctor.id

    def test_unknown_appointment(self, client, auth_headers, receptionist):
        response = client.get('/api/appointments/999', headers=auth_headers(receptionist))

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Appointment not found'}


class TestBillingRoutes:

    def test_create_bill_and_pay(self, client, auth_headers, accountant, patient):
        headers = auth_headers(accountant)

        created = client.post('/api/billing', json=dict(BILL, patient_id=patient.id), headers=headers)
        bill_id = created.get_json()['data']['id']
        partial = client.post(f'/api/billing/{bill_id}/payment',
                              json={'amount': 100, 'payment_method': 'Cash'}, headers=headers)
        paid = client.post(f'/api/billing/{bill_id}/payment',
                           json={'amount': '153.00', 'payment_method': 'Card'}, headers=headers)
        refused = client.post(f'/api/billing/{bill_id}/payment',
                              json={'amount': 5, 'payment_method': 'Cash'}, headers=headers)

        assert created.status_code == 201
        assert created.get_json()['data']['total_amount'] == '253.00'
        assert partial.get_json()['data'] == {
            'payment_id': partial.get_json()['data']['payment_id'],
            'total_paid': '100.00',
            'remaining_amount': '153.00',
            'payment_status': 'Partially Paid',
        }
        assert paid.get_json()['data']['payment_status'] == 'Paid'
        assert refused.status_code == 409

    def test_bill_detail_includes_ledger(self, client, auth_headers, accountant, patient):
        headers = auth_headers(accountant)
        bill_id = client.post('/api/billing', json=dict(BILL, patient_id=patient.id),
                              headers=headers).get_json()['data']['id']
        client.post(f'/api/billing/{bill_id}/payment', json={'amount': 50, 'payment_method': 'Online'},
                    headers=headers)

        data = client.get(f'/api/billing/{bill_id}', headers=headers).get_json()['data']

        assert len(data['items']) == 2
        assert len(data['payments']) == 1
        assert data['remaining_amount'] == '203.00'

    def test_payment_requires_amount(self, client, auth_headers, accountant, patient):
        headers = auth_headers(accountant)
        bill_id = client.post('/api/billing', json=dict(BILL, patient_id=patient.id),
                              headers=headers).get_json()['data']['id']

        response = client.post(f'/api/billing/{bill_id}/payment', json={'payment_method': 'Cash'},
                               headers=headers)

        assert response.status_code == 400

    def test_stats_are_restricted(self, client, auth_headers, receptionist, accountant):
        assert client.get('/api/billing/stats/overview', headers=auth_headers(receptionist)).status_code == 403

        response = client.get('/api/billing/stats/overview', headers=auth_headers(accountant))

        assert response.status_code == 200
        assert response.get_json()['data']['overview']['total_bills'] == 0

    def test_doctor_cannot_bill(self, client, auth_headers, doctor, patient):
        response = client.post('/api/billing', json=dict(BILL, patient_id=patient.id),
                               headers=auth_headers(doctor))

        assert response.status_code == 403


class TestPatientAndStaffRoutes:

    def test_create_patient(self, client, auth_headers, receptionist, patient):
        response = client.post('/api/patients', headers=auth_headers(receptionist), json={
            'first_name': 'John', 'last_name': 'Smith', 'phone': '555-0199',
        })

        assert response.status_code == 201
        assert response.get_json()['data']['patient_number'] == 'P0002'

    def test_duplicate_patient_phone(self, client, auth_headers, receptionist, patient):
        response = client.post('/api/patients', headers=auth_headers(receptionist), json={
            'first_name': 'John', 'last_name': 'Smith', 'phone': patient.phone,
        })

        assert response.status_code == 409

    def test_only_admin_deletes_patients(self, client, auth_headers, receptionist, admin, patient):
        refused = client.delete(f'/api/patients/{patient.id}', headers=auth_headers(receptionist))
        deleted = client.delete(f'/api/patients/{patient.id}', headers=auth_headers(admin))
        gone = client.get(f'/api/patients/{patient.id}', headers=auth_headers(admin))

        assert refused.status_code == 403
        assert deleted.status_code == 200
        assert gone.status_code == 404

    def test_doctor_schedule(self, client, auth_headers, receptionist, patient, doctor, monday):
        headers = auth_headers(receptionist)
        client.post('/api/appointments', json=_booking(patient, doctor, monday), headers=headers)

        response = client.get(f'/api/staff/{doctor.id}/schedule?date={monday.isoformat()}', headers=headers)

        data = response.get_json()['data']
        assert data['working_hours'] == {'working': True, 'start': '09:00', 'end': '17:00'}
        assert len(data['appointments']) == 1
        assert len(data['available_slots']) == 15

    def test_admin_creates_doctor(self, client, auth_headers, admin):
        response = client.post('/api/staff', headers=auth_headers(admin), json={
            'username': 'drgrey',
            'email': 'drgrey@clinic.test',
            'password': 'secret123',
            'first_name': 'Meredith',
            'last_name': 'Grey',
            'role': 'doctor',
            'schedule': {'Tuesday': {'working': True, 'start': '10:00', 'end': '12:00'}},
        })

        assert response.status_code == 201
        assert response.get_json()['data']['schedule']['Tuesday']['end'] == '12:00'


class TestHealthAndErrors:

    @pytest.mark.parametrize('path', ['/health', '/health/ping', '/health/live', '/health/ready'])
    def test_health_endpoints(self, client, path):
        assert client.get(path).status_code == 200

    def test_unknown_endpoint(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Endpoint not found'}
