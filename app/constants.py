import string

PHONE_COUNTRY_CODE = "+91"
PHONE_REGEX = r"^\+91\d{10}$"
OTP_REGEX = r"^\d{4}$"
OTP_MIN = 1000
OTP_MAX = 9999

TOKEN_TYPE = "Bearer"
PATIENT_TOKEN_EXPIRES_IN = 86400
STAFF_TOKEN_EXPIRES_IN = 7200

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"
ADMIN_TEMP_PASSWORD_LENGTH = 16
STAFF_TEMP_PASSWORD_LENGTH = 12
MIN_PASSWORD_LENGTH = 8
