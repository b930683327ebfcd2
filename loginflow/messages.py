"""
Response message keys.

Transport layers translate these keys into status codes and localised text;
loginflow only decides which key an outcome carries.
"""

# General messages
NOT_IMPLEMENTED = "NotImplemented"
INTERNAL_ERROR = "InternalError"
INCORRECT_ARGUMENTS = "IncorrectArguments"
OK = "OK"

# User input messages
MISSING_EMAIL = "MissingEmail"
INVALID_EMAIL = "InvalidEmail"
INVALID_USERNAME = "InvalidUsername"
MISSING_PASSWORD = "MissingPassword"
PASSWORD_COMPLEXITY_TOO_LOW = "PasswordComplexityTooLow"
DUPLICATE_USER_ACCOUNT = "DuplicateUserAccount"
CREATE_USER_SUCCESS = "CreateUserSuccess"

# Status messages
LOGIN_SUCCESSFUL = "LoginSuccessful"
LOGOUT_SUCCESSFUL = "LogoutSuccessful"
ACTIVATION_SUCCESSFUL = "ActivationSuccessful"
ACCOUNT_LOCKED = "AccountLocked"
ACCOUNT_NOT_ACTIVATED = "AccountNotActivated"
TOO_MANY_ATTEMPTS = "TooManyAttempts"
UNLOCK_SUCCESSFUL = "UnlockSuccessful"
PASSWORD_UPDATED = "PasswordUpdated"
ALREADY_AUTHENTICATED = "AlreadyAuthenticated"
UNAUTHORIZED = "Unauthorized"
INVALID_CREDENTIALS = "InvalidCredentials"
INVALID_TOKEN = "InvalidToken"
MISSING_TOKEN = "MissingToken"
TOKEN_STASHED = "TokenStashed"
NO_RECOVERY_PENDING = "NoRecoveryPending"
LOGIN_REQUIRED = "LoginRequired"
POLICY_DENIED = "PolicyDenied"
INTERNAL_INCONSISTENCY = "InternalInconsistency"

# Second factor messages
SECOND_FACTOR_REQUIRED = "SecondFactorRequired"
SECOND_FACTOR_INVALID_SESSION = "SecondFactorInvalidSession"
SECOND_FACTOR_SUCCESS = "SecondFactorSuccess"
SECOND_FACTOR_FAILED = "SecondFactorFailed"
SECOND_FACTOR_NOT_FOUND = "SecondFactorNotFound"
BACKUP_TOKEN_OVERWRITE_REQUIRED = "CreateBackupTokenOverwriteRequired"

# Token redemption failures
TOKEN_NOT_FOUND = "TokenNotFound"
TOKEN_ALREADY_CONSUMED = "TokenAlreadyConsumed"
TOKEN_EXPIRED = "TokenExpired"
TOKEN_KIND_MISMATCH = "TokenKindMismatch"
TOKEN_PRINCIPAL_MISMATCH = "TokenPrincipalMismatch"

# Keyed by RejectReason value
REJECT_CODES = {
    'invalid_input': INCORRECT_ARGUMENTS,
    'already_authenticated': ALREADY_AUTHENTICATED,
    'invalid_credentials': INVALID_CREDENTIALS,
    'invalid_token': INVALID_TOKEN,
    'internal_inconsistency': INTERNAL_INCONSISTENCY,
    'policy_denied': POLICY_DENIED,
    'internal_error': INTERNAL_ERROR,
    'invalid_session': SECOND_FACTOR_INVALID_SESSION,
    'second_factor_failed': SECOND_FACTOR_FAILED,
    'unauthorized': UNAUTHORIZED,
}

# Keyed by RedeemFailure value
REDEEM_CODES = {
    'not_found': TOKEN_NOT_FOUND,
    'already_consumed': TOKEN_ALREADY_CONSUMED,
    'expired': TOKEN_EXPIRED,
    'kind_mismatch': TOKEN_KIND_MISMATCH,
    'principal_mismatch': TOKEN_PRINCIPAL_MISMATCH,
}

# Policy deny reasons that carry their own key
DENY_CODES = {
    ACCOUNT_LOCKED: ACCOUNT_LOCKED,
    ACCOUNT_NOT_ACTIVATED: ACCOUNT_NOT_ACTIVATED,
    TOO_MANY_ATTEMPTS: TOO_MANY_ATTEMPTS,
}


def code_for(outcome) -> str:
    """Return the message key carried by any loginflow outcome."""
    return outcome.code
