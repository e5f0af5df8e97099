from .bean import (
    BEAN_PRIORITIES,
    BEAN_STATUSES,
    BEAN_TYPES,
    VALID_PARENT_TYPES,
    Bean,
    BeanFilter,
    code_from_id,
)
from .errors import (
    BackendCommandError,
    BackendTimeoutError,
    BackendUnavailableError,
    BeansError,
    BeansPermissionError,
    BeanValidationError,
    MalformedRecordError,
    MalformedResponseError,
    PathSafetyError,
    QuarantineError,
    user_message,
)
from .hierarchy import (
    HierarchyError,
    build_children_index,
    detect_parent_cycle,
    find_dangling_parents,
    iter_descendants,
    validate_parent,
)
from .status import CASCADE_TARGETS, CLOSED_STATUSES, normalize_status, triggers_cascade

__all__ = [
    "Bean",
    "BeanFilter",
    "BEAN_STATUSES",
    "BEAN_TYPES",
    "BEAN_PRIORITIES",
    "VALID_PARENT_TYPES",
    "code_from_id",
    # Errors
    "BeansError",
    "BackendUnavailableError",
    "BackendTimeoutError",
    "MalformedResponseError",
    "BackendCommandError",
    "MalformedRecordError",
    "QuarantineError",
    "PathSafetyError",
    "BeansPermissionError",
    "BeanValidationError",
    "user_message",
    # Hierarchy
    "HierarchyError",
    "build_children_index",
    "find_dangling_parents",
    "iter_descendants",
    "detect_parent_cycle",
    "validate_parent",
    # Status
    "CASCADE_TARGETS",
    "CLOSED_STATUSES",
    "normalize_status",
    "triggers_cascade",
]
