"""Catalog object types and column names.

Rows exchanged with the catalog store and the full-text index are plain
dicts keyed by these names. Dotted names address nested objects
(``application.name``).
"""

# Catalog object types understood by CatalogStore
ROLE = "Role"
ENTITLEMENT = "Entitlement"
APPLICATION = "Application"
IDENTITY = "Identity"
IDENTITY_ENTITLEMENT = "IdentityEntitlement"

# Shared item columns
ID = "id"
NAME = "name"
DISPLAY_NAME = "display_name"
DESCRIPTION = "description"
TYPE = "type"
RISK_SCORE_WEIGHT = "risk_score_weight"
OBJECT_TYPE = "object_type"

# Full-text discriminator stored on every indexed document
OBJECT_CLASS = "object_class"

# Role columns
INHERITANCE = "inheritance"
PERMITS = "permits"
PERMITTED_ROLE = "permitted_role"

# Entitlement columns
APPLICATION_ID = "application.id"
APPLICATION_NAME = "application.name"
ATTRIBUTE = "attribute"
VALUE = "value"
REQUESTABLE = "requestable"
PERMISSION_TYPE = "Permission"

# Identity columns
ASSIGNED_ROLES = "assigned_roles"
DETECTED_ROLES = "detected_roles"
ROLE_ASSIGNMENTS = "role_assignments"
ENTITLEMENTS = "entitlements"
PENDING_REQUESTS = "pending_requests"
COMPOSITE_SCORE = "composite_score"

# IdentityEntitlement columns
IDENTITY_ID = "identity.id"
ENTITLEMENT_ID = "entitlement_id"

# Population statistics attached by identity searches
POP_STATS = "pop_stats"

# Current access columns
STATUS = "status"
DISPLAYABLE_STATUS = "displayable_status"
SUNRISE = "sunrise"
SUNSET = "sunset"
REMOVE_PENDING = "remove_pending"
REMOVABLE = "removable"
ASSIGNMENT_ID = "assignment_id"
ASSIGNMENT_NOTE = "assignment_note"
ROLE_TARGETS = "role_targets"
ROLE_LOCATION = "role_location"
INSTANCE = "instance"
NATIVE_IDENTITY = "native_identity"
ACCOUNT = "account"

# Columns the full-text index stores as strings
NUMERIC_COLUMNS = (RISK_SCORE_WEIGHT,)

# Default projections
ROLE_COLUMNS = [ID, NAME, DISPLAY_NAME, DESCRIPTION, TYPE, RISK_SCORE_WEIGHT]
ENTITLEMENT_COLUMNS = [
    ID, DISPLAY_NAME, DESCRIPTION, TYPE, RISK_SCORE_WEIGHT,
    APPLICATION_ID, APPLICATION_NAME, ATTRIBUTE, VALUE, REQUESTABLE,
]
