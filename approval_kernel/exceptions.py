"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (document modules, administration screens,
the escalation job) must react to failures precisely:

  - A misconfigured workflow is surfaced to an administrator.
  - A lost concurrency race is retried with fresh state.
  - An action against a finished request is reported back to the user.

Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        service.record_action(request_id, step_id, actor_id, Decision.APPROVE)
    except StaleStateError:
        # re-read the request and resubmit
        ...
    except InvalidTransitionError as e:
        api_response(code=e.code, request=e.request_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- ConfigurationError
    |   +-- InvalidConditionError
    |   +-- InvalidStepConfigurationError
    |   +-- ApproverResolutionError
    |   +-- NoActiveWorkflowError
    |
    +-- WorkflowAdministrationError
    |   +-- WorkflowNotFoundError
    |   +-- StepNotFoundError
    |   +-- WorkflowVersionInUseError
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |   +-- DuplicateRequestError
    |   +-- UnauthorizedApproverError
    |   +-- InvalidTransitionError
    |       +-- RequestAlreadyResolvedError
    |       +-- EscalationNotDueError
    |
    +-- ConcurrencyError
    |   +-- StaleStateError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_CONDITION           | Bad field_path, operator or action
                | INVALID_STEP_CONFIGURATION  | Bad step order, policy or escalation
                | APPROVER_RESOLUTION_EMPTY   | Step resolves to zero eligible users
                | NO_ACTIVE_WORKFLOW          | entity_type has no active version
----------------|-----------------------------|-----------------------------------------
Administration  | WORKFLOW_NOT_FOUND          | Workflow version id doesn't exist
                | STEP_NOT_FOUND              | Step id doesn't exist
                | WORKFLOW_VERSION_IN_USE     | Editing a version a request references
----------------|-----------------------------|-----------------------------------------
Request         | REQUEST_NOT_FOUND           | Request id doesn't exist
                | DUPLICATE_REQUEST           | Entity already has an open request
                | UNAUTHORIZED_APPROVER       | Actor not eligible on current step
                | INVALID_TRANSITION          | Action not allowed in current state
                | REQUEST_ALREADY_RESOLVED    | Request is approved/rejected/cancelled
                | ESCALATION_NOT_DUE          | Step deadline has not elapsed
----------------|-----------------------------|-----------------------------------------
Concurrency     | STALE_STATE                 | Concurrent writer won (retryable)
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFIGURATION ERRORS are for administrators, never end users:

    except ConfigurationError as e:
        alert_admins(code=e.code, detail=str(e))

2. STALE STATE is retryable:

    except StaleStateError:
        request = service.get_request(request_id)
        ...  # decide again with fresh state

3. INVALID TRANSITIONS never mutate state; report and stop.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Configuration errors


class ConfigurationError(ApprovalKernelError):
    """Workflow configuration cannot be evaluated.

    Blocks workflow activation and evaluation; surfaced to administrators.
    """

    code: str = "CONFIGURATION_ERROR"


class InvalidConditionError(ConfigurationError):
    """A step condition is malformed."""

    code: str = "INVALID_CONDITION"

    def __init__(self, field_path: str, operator: str, reason: str):
        self.field_path = field_path
        self.operator = operator
        self.reason = reason
        super().__init__(
            f"Invalid condition on '{field_path}' ({operator}): {reason}"
        )


class InvalidStepConfigurationError(ConfigurationError):
    """A step (or the step chain of a version) is misconfigured."""

    code: str = "INVALID_STEP_CONFIGURATION"

    def __init__(self, step_name: str, reason: str):
        self.step_name = step_name
        self.reason = reason
        super().__init__(f"Invalid step '{step_name}': {reason}")


class ApproverResolutionError(ConfigurationError):
    """Approver resolution produced an empty eligible set."""

    code: str = "APPROVER_RESOLUTION_EMPTY"

    def __init__(self, step_name: str, dropped: tuple[str, ...] = ()):
        self.step_name = step_name
        self.dropped = dropped
        detail = f" (dropped: {', '.join(dropped)})" if dropped else ""
        super().__init__(
            f"Step '{step_name}' has no eligible approvers{detail}"
        )


class NoActiveWorkflowError(ConfigurationError):
    """No workflow version is active for the entity type."""

    code: str = "NO_ACTIVE_WORKFLOW"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(
            f"No active approval workflow found for entity type '{entity_type}'"
        )


# Administration errors


class WorkflowAdministrationError(ApprovalKernelError):
    """Base exception for workflow administration errors."""

    code: str = "WORKFLOW_ADMINISTRATION_ERROR"


class WorkflowNotFoundError(WorkflowAdministrationError):
    """Workflow version with given ID was not found."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class StepNotFoundError(WorkflowAdministrationError):
    """Step with given ID was not found."""

    code: str = "STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step not found: {step_id}")


class WorkflowVersionInUseError(WorkflowAdministrationError):
    """A workflow version referenced by a request cannot be edited.

    Edits must go to a new version (see clone_version).
    """

    code: str = "WORKFLOW_VERSION_IN_USE"

    def __init__(self, workflow_id: str, version: int, request_count: int):
        self.workflow_id = workflow_id
        self.version = version
        self.request_count = request_count
        super().__init__(
            f"Workflow {workflow_id} v{version} is referenced by "
            f"{request_count} request(s); create a new version instead"
        )


# Request errors


class RequestError(ApprovalKernelError):
    """Base exception for approval request errors."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """Approval request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class DuplicateRequestError(RequestError):
    """The document already has a non-terminal approval request."""

    code: str = "DUPLICATE_REQUEST"

    def __init__(self, entity_type: str, entity_id: str, existing_request_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.existing_request_id = existing_request_id
        super().__init__(
            f"{entity_type} {entity_id} already has an open approval "
            f"request: {existing_request_id}"
        )


class UnauthorizedApproverError(RequestError):
    """Actor is not in the eligible approver set of the current step."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, request_id: str, actor_id: str, step_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        self.step_id = step_id
        super().__init__(
            f"Actor {actor_id} is not authorized to act on step {step_id} "
            f"of request {request_id}"
        )


class InvalidTransitionError(RequestError):
    """The requested transition is not allowed in the current state.

    No state is mutated when this is raised.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, status: str, reason: str):
        self.request_id = request_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Invalid transition for request {request_id} "
            f"(status={status}): {reason}"
        )


class RequestAlreadyResolvedError(InvalidTransitionError):
    """The request is in a terminal status."""

    code: str = "REQUEST_ALREADY_RESOLVED"

    def __init__(self, request_id: str, status: str):
        super().__init__(request_id, status, "request is already resolved")


class EscalationNotDueError(InvalidTransitionError):
    """Escalation was requested before the step deadline elapsed."""

    code: str = "ESCALATION_NOT_DUE"

    def __init__(self, request_id: str, status: str, deadline: str | None):
        self.deadline = deadline
        reason = (
            f"step deadline {deadline} has not elapsed"
            if deadline is not None
            else "step has no timeout configured"
        )
        super().__init__(request_id, status, reason)


# Concurrency errors


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """A concurrent writer modified the request first.

    Retryable: re-read the request and resubmit the action.
    """

    code: str = "STALE_STATE"

    def __init__(self, request_id: str, expected_version: int | None = None,
                 actual_version: int | None = None):
        self.request_id = request_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected v{expected_version}, found v{actual_version})"
        super().__init__(
            f"Approval request {request_id} was modified by another "
            f"transaction{detail}"
        )


# Immutability errors


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
