"""Cache key builders.

Keys fall in two classes. Entity keys (conversation, department lists) are
deleted by the writes that change them. Per-subject keys embed a user id
and are never enumerated on write; they expire with the TTL, or in
versioned mode move to a new epoch suffix.
"""

from supportdesk.types import ConversationStatus

# Entity keys


def conversation_state(conversation_id: str) -> str:
    return f"conversation_state:{conversation_id}"


def conversation(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def workspace_conversations(workspace_id: str, status: str | None = None) -> str:
    if status is None:
        return f"conversations:workspace:{workspace_id}"
    return f"conversations:workspace:{workspace_id}:status:{status}"


def conversation_assigned(conversation_id: str) -> str:
    return f"conversation_assigned:{conversation_id}"


def conversation_assigned_user(conversation_id: str) -> str:
    return f"conversation_assigned_user:{conversation_id}"


def conversation_visibility(conversation_id: str) -> str:
    return f"conversation_visibility:{conversation_id}"


def conversation_viewers(conversation_id: str) -> str:
    return f"conversation_viewers:{conversation_id}"


def department(department_id: str) -> str:
    return f"department:{department_id}"


def department_users(department_id: str) -> str:
    return f"department_users:department:{department_id}"


def department_managers(department_id: str) -> str:
    return f"department_managers:{department_id}"


def department_human_support(department_id: str) -> str:
    return f"department_human_support:{department_id}"


# Per-subject keys


def is_dept_manager(user_id: str, department_id: str) -> str:
    return f"is_dept_manager:{user_id}:{department_id}"


def is_human_support(user_id: str, department_id: str) -> str:
    return f"is_human_support:{user_id}:{department_id}"


def is_dept_member(user_id: str, department_id: str) -> str:
    return f"is_dept_member:{user_id}:{department_id}"


def user_dept_role(user_id: str, department_id: str) -> str:
    return f"user_dept_role:{user_id}:{department_id}"


def conversation_access(user_id: str, conversation_id: str) -> str:
    return f"conversation_access:{user_id}:{conversation_id}"


# Epoch scopes for versioned mode


def department_scope(department_id: str) -> str:
    return f"department:{department_id}"


def conversation_scope(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


# Invalidation sets


def status_change_keys(conversation_id: str, workspace_id: str) -> list[str]:
    """Keys a conversation status write deletes."""
    return [
        conversation_state(conversation_id),
        conversation(conversation_id),
        workspace_conversations(workspace_id),
        *(workspace_conversations(workspace_id, s.value) for s in ConversationStatus),
    ]


def assignment_keys(conversation_id: str, workspace_id: str) -> list[str]:
    """Keys an assignment write deletes."""
    return [
        conversation(conversation_id),
        conversation_assigned(conversation_id),
        conversation_assigned_user(conversation_id),
        conversation_visibility(conversation_id),
        conversation_viewers(conversation_id),
        workspace_conversations(workspace_id),
        *(workspace_conversations(workspace_id, s.value) for s in ConversationStatus),
    ]


def department_keys(department_id: str) -> list[str]:
    """Keys a department membership write deletes. Per-subject keys are not included."""
    return [
        department(department_id),
        department_users(department_id),
        department_managers(department_id),
        department_human_support(department_id),
    ]
