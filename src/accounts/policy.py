"""Role -> action authorisation table.

Every permission decision in the services and the API goes through
:func:`role_can`; nothing else compares role strings.
"""

ACTION_CHOICES = [
    ("CAN_UPDATE_STOCK", "Can set circle SIM/FTTH stock totals"),
    ("CAN_CREATE_EVENT", "Can create and edit events"),
    ("CAN_MANAGE_TEAM", "Can assign team members and targets"),
    ("CAN_APPROVE_SALES", "Can approve or reject sales reports"),
    ("CAN_SUBMIT_SALES", "Can submit event sales and reports"),
    ("CAN_RAISE_ISSUE", "Can raise issues"),
    ("CAN_MANAGE_ISSUES", "Can change issue status and escalate"),
    ("CAN_VIEW_REPORTS", "Can view team and circle reports"),
    ("CAN_VIEW_ALL_CIRCLES", "Can see data of every circle"),
    ("CAN_MANAGE_HIERARCHY", "Can import and edit employee master data"),
    ("CAN_VIEW_AUDIT", "Can read the audit log"),
    ("CAN_MANAGE_FTTH_PENDING", "Can import and edit FTTH pending order data"),
]

ALL_ACTIONS = [code for code, _ in ACTION_CHOICES]

_FIELD_ACTIONS = ["CAN_SUBMIT_SALES", "CAN_RAISE_ISSUE"]
_MANAGER_ACTIONS = _FIELD_ACTIONS + [
    "CAN_CREATE_EVENT",
    "CAN_MANAGE_TEAM",
    "CAN_APPROVE_SALES",
    "CAN_MANAGE_ISSUES",
    "CAN_VIEW_REPORTS",
    "CAN_MANAGE_FTTH_PENDING",
]

ROLE_ACTION_MAP = {
    "ADMIN": frozenset(ALL_ACTIONS),
    "GM": frozenset(_MANAGER_ACTIONS + ["CAN_UPDATE_STOCK", "CAN_VIEW_ALL_CIRCLES", "CAN_VIEW_AUDIT"]),
    "CGM": frozenset(_MANAGER_ACTIONS + ["CAN_UPDATE_STOCK"]),
    "DGM": frozenset(_MANAGER_ACTIONS + ["CAN_UPDATE_STOCK"]),
    "AGM": frozenset(_MANAGER_ACTIONS),
    "SD_JTO": frozenset(_FIELD_ACTIONS + ["CAN_MANAGE_TEAM", "CAN_MANAGE_ISSUES", "CAN_VIEW_REPORTS"]),
    "SALES_STAFF": frozenset(_FIELD_ACTIONS),
}


def role_can(role, action) -> bool:
    """Return True when *role* is granted *action*."""
    if action not in ALL_ACTIONS:
        raise KeyError(f"Unknown action: {action}")
    return action in ROLE_ACTION_MAP.get(role, frozenset())


def roles_with(action):
    """Return the roles that are granted *action*, in declaration order."""
    return [role for role, actions in ROLE_ACTION_MAP.items() if action in actions]
