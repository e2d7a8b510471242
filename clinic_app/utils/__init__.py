"""
Helpers shared by models, services and routes.

Import submodules directly (clinic_app.utils.decorators, clinic_app.utils.audit);
models depend on clinic_app.utils.schedule, so this package stays free of
model imports.
"""
