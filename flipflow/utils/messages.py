"""
Standardized user-facing messages.
All messages use consistent formatting and categorization.
"""

from flask_babel import lazy_gettext as _

# Success messages
FLIPBOOK_CREATED = _("Flipbook %(title)s has been created successfully.")
FLIPBOOK_UPDATED = _("Flipbook has been updated successfully.")
FLIPBOOK_DELETED = _("The flipbook has been permanently removed from your account.")
LINK_READY = _("Share this link: %(url)s")
PAYMENT_SUCCESS = _("Your %(plan)s plan has been activated.")

# Error taxonomy messages
ERROR_NETWORK = _("Connection problem. Please check your internet connection.")
ERROR_TIMEOUT = _("Request timed out. Please try again.")
ERROR_AUTH = _("Authentication failed. Please sign in again.")
ERROR_SESSION_EXPIRED = _("Your session has expired. Please sign in again.")
ERROR_PERMISSION_DENIED = _("You don't have permission to perform this action.")
ERROR_VALIDATION = _("Please check your input and try again.")
ERROR_NOT_FOUND_GENERIC = _("The requested item could not be found.")
ERROR_SERVER = _("Server error occurred. Please try again in a moment.")
ERROR_CLIENT = _("An application error occurred. Please refresh the page.")
ERROR_UNKNOWN = _("An unexpected error occurred. Please try again.")

ERROR_NOT_FOUND = _("%(item)s not found.")
ERROR_OPERATION_FAILED = _("Operation failed: %(reason)s")

# Upload validation
UPLOAD_INVALID_PDF = _("Please upload a valid PDF file")
UPLOAD_PDF_TOO_LARGE = _("File size must be less than %(size)s")
UPLOAD_EMPTY_FILE = _("File cannot be empty")
UPLOAD_INVALID_IMAGE = _("Please upload a PNG, JPEG, GIF, WEBP or SVG image")
UPLOAD_IMAGE_TOO_LARGE = _("Image size must be less than %(size)s")
UPLOAD_PDF_UNREADABLE = _("Failed to load PDF document")

# Permission messages
PERMISSION_SIGN_IN = _("Please sign in to continue.")
PERMISSION_NOT_OWNER = _("You don't have permission to access this resource.")
PERMISSION_ROLE = _("This action requires %(role)s privileges.")
PERMISSION_DENIED = _("Permission denied.")

# Plan messages
PLAN_UPGRADE_ACTION = _("Upgrade to Premium")

# Auth messages
AUTH_LOGIN_SUCCESS = _("Login successful!")
AUTH_INVALID_CREDENTIALS = _("Invalid email or password. Please try again.")
AUTH_LOGOUT_SUCCESS = _("You have been logged out.")
AUTH_REGISTRATION_SUCCESS = _("Registration successful! Check your inbox to confirm your email.")

# Payment messages
PAYMENT_NOT_CONFIGURED = _("Payments are not available right now.")
PAYMENT_VERIFICATION_FAILED = _("Payment verification failed")
PAYMENT_VERIFIED = _("Payment has been verified")
