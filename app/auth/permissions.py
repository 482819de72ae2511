from typing import Dict, List, Tuple

from app.models.user import UserRole

ROLE_PERMISSIONS: Dict[UserRole, Tuple[str, ...]] = {
    UserRole.HOSPITAL_ADMIN: (
        "manage_staff",
        "view_hospital_data",
        "manage_settings",
        "view_reports",
    ),
    UserRole.DOCTOR: (
        "read_patients",
        "write_prescriptions",
        "view_appointments",
        "update_medical_records",
    ),
    UserRole.PHARMACIST: (
        "read_prescriptions",
        "dispense_medications",
        "inventory_management",
        "view_patient_info",
    ),
    UserRole.PATIENT: (),
}


def permissions_for(role: UserRole) -> List[str]:
    return list(ROLE_PERMISSIONS.get(UserRole(role), ()))
