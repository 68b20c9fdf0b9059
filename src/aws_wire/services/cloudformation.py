# src/aws_wire/services/cloudformation.py

"""
CloudFormation stack lifecycle over the Query API.

Templates are passed through as opaque strings; building them is the caller's
concern.
"""

import logging
import time
from typing import Any, Callable, Iterable, Literal, Mapping

from ..exceptions import (
    AwsWireError,
    DeadlineExceededError,
    NotFoundError,
    StackOperationError,
    ValidationError,
    get_error_context,
)
from ..protocols import QueryProtocol
from .base import ServiceClient, as_list, tag_list

logger = logging.getLogger(__name__)

API_VERSION = "2010-05-15"

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_WAIT_TIMEOUT = 30 * 60.0

WAITER_STATES = {
    "stack-create-complete": ("CREATE_COMPLETE",),
    "stack-update-complete": ("UPDATE_COMPLETE",),
    "stack-delete-complete": ("DELETE_COMPLETE",),
    "stack-import-complete": ("IMPORT_COMPLETE",),
}


def _parameters(parameters: Mapping[str, str | None] | None) -> list[dict[str, Any]] | None:
    """A None value keeps the parameter's previous value on update."""
    if not parameters:
        return None
    return [
        {"ParameterKey": key, "UsePreviousValue": True}
        if value is None
        else {"ParameterKey": key, "ParameterValue": value}
        for key, value in parameters.items()
    ]


def _template_source(template_body: str | None, template_url: str | None) -> dict[str, str | None]:
    if template_body is not None and template_url is not None:
        raise ValidationError(
            "Pass template_body or template_url, not both", code="InvalidArgument"
        )
    return {"TemplateBody": template_body, "TemplateURL": template_url}


class CloudFormationClient(ServiceClient):
    signing_name = "cloudformation"

    @classmethod
    def build_protocol(cls) -> QueryProtocol:
        return QueryProtocol(API_VERSION)

    def create_stack(
        self,
        stack_name: str,
        template_body: str | None = None,
        template_url: str | None = None,
        parameters: Mapping[str, str] | None = None,
        capabilities: list[str] | None = None,
        role_arn: str | None = None,
        tags: Mapping[str, str] | None = None,
        timeout_in_minutes: int | None = None,
        on_failure: str | None = None,
    ) -> str:
        """Starts stack creation and returns the stack id."""
        if template_body is None and template_url is None:
            raise ValidationError(
                "Either template_body or template_url must be provided",
                code="InvalidArgument",
                context={"stack_name": stack_name},
            )
        result = self._call(
            "CreateStack",
            {
                "StackName": stack_name,
                **_template_source(template_body, template_url),
                "Parameters": _parameters(parameters),
                "Capabilities": capabilities or None,
                "RoleARN": role_arn,
                "Tags": tag_list(tags),
                "TimeoutInMinutes": timeout_in_minutes,
                "OnFailure": on_failure,
            },
        )
        return result.get("StackId") or ""

    def update_stack(
        self,
        stack_name: str,
        template_body: str | None = None,
        template_url: str | None = None,
        use_previous_template: bool | None = None,
        parameters: Mapping[str, str | None] | None = None,
        capabilities: list[str] | None = None,
        role_arn: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        result = self._call(
            "UpdateStack",
            {
                "StackName": stack_name,
                **_template_source(template_body, template_url),
                "UsePreviousTemplate": use_previous_template,
                "Parameters": _parameters(parameters),
                "Capabilities": capabilities or None,
                "RoleARN": role_arn,
                "Tags": tag_list(tags),
            },
        )
        return result.get("StackId") or ""

    def delete_stack(
        self,
        stack_name: str,
        role_arn: str | None = None,
        retain_resources: list[str] | None = None,
    ) -> None:
        self._call(
            "DeleteStack",
            {
                "StackName": stack_name,
                "RoleARN": role_arn,
                "RetainResources": retain_resources or None,
            },
        )

    def describe_stacks(
        self, stack_name: str | None = None, next_token: str | None = None
    ) -> dict[str, Any]:
        result = self._call("DescribeStacks", {"StackName": stack_name, "NextToken": next_token})
        return {"Stacks": as_list(result.get("Stacks")), "NextToken": result.get("NextToken")}

    def describe_stack_events(
        self, stack_name: str, next_token: str | None = None
    ) -> dict[str, Any]:
        """Events come back newest first."""
        result = self._call(
            "DescribeStackEvents", {"StackName": stack_name, "NextToken": next_token}
        )
        return {
            "StackEvents": as_list(result.get("StackEvents")),
            "NextToken": result.get("NextToken"),
        }

    def list_stack_resources(
        self, stack_name: str, next_token: str | None = None
    ) -> dict[str, Any]:
        result = self._call(
            "ListStackResources", {"StackName": stack_name, "NextToken": next_token}
        )
        return {
            "StackResourceSummaries": as_list(result.get("StackResourceSummaries")),
            "NextToken": result.get("NextToken"),
        }

    def list_stacks(
        self, stack_status_filter: list[str] | None = None, next_token: str | None = None
    ) -> dict[str, Any]:
        result = self._call(
            "ListStacks",
            {"StackStatusFilter": stack_status_filter or None, "NextToken": next_token},
        )
        return {
            "StackSummaries": as_list(result.get("StackSummaries")),
            "NextToken": result.get("NextToken"),
        }

    def validate_template(
        self, template_body: str | None = None, template_url: str | None = None
    ) -> dict[str, Any]:
        if template_body is None and template_url is None:
            raise ValidationError(
                "Either template_body or template_url must be provided", code="InvalidArgument"
            )
        result = self._call("ValidateTemplate", _template_source(template_body, template_url))
        result["Parameters"] = as_list(result.get("Parameters"))
        result["Capabilities"] = as_list(result.get("Capabilities"))
        return result

    def create_change_set(
        self,
        stack_name: str,
        change_set_name: str,
        template_body: str | None = None,
        template_url: str | None = None,
        use_previous_template: bool | None = None,
        parameters: Mapping[str, str | None] | None = None,
        capabilities: list[str] | None = None,
        change_set_type: Literal["CREATE", "UPDATE", "IMPORT"] = "UPDATE",
        description: str | None = None,
        role_arn: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Returns the change set ``Id`` and the ``StackId`` it belongs to."""
        if template_body is None and template_url is None and not use_previous_template:
            raise ValidationError(
                "A change set needs template_body, template_url or use_previous_template",
                code="InvalidArgument",
                context={"stack_name": stack_name, "change_set_name": change_set_name},
            )
        result = self._call(
            "CreateChangeSet",
            {
                "StackName": stack_name,
                "ChangeSetName": change_set_name,
                "ChangeSetType": change_set_type,
                **_template_source(template_body, template_url),
                "UsePreviousTemplate": use_previous_template,
                "Parameters": _parameters(parameters),
                "Capabilities": capabilities or None,
                "Description": description,
                "RoleARN": role_arn,
                "Tags": tag_list(tags),
            },
        )
        return {"Id": result.get("Id") or "", "StackId": result.get("StackId") or ""}

    def describe_change_set(
        self, change_set_name: str, stack_name: str | None = None
    ) -> dict[str, Any]:
        result = self._call(
            "DescribeChangeSet", {"ChangeSetName": change_set_name, "StackName": stack_name}
        )
        result["Changes"] = as_list(result.get("Changes"))
        result["Parameters"] = as_list(result.get("Parameters"))
        return result

    def execute_change_set(self, change_set_name: str, stack_name: str | None = None) -> None:
        self._call(
            "ExecuteChangeSet", {"ChangeSetName": change_set_name, "StackName": stack_name}
        )

    def get_stack_outputs(self, stack_name: str) -> dict[str, str]:
        """Returns the stack's outputs as ``{OutputKey: OutputValue}``."""
        stacks = self.describe_stacks(stack_name)["Stacks"]
        if not stacks:
            return {}
        return {
            output["OutputKey"]: output.get("OutputValue") or ""
            for output in as_list(stacks[0].get("Outputs"))
            if output.get("OutputKey")
        }

    def wait_for_stack(
        self,
        stack_name: str,
        desired_states: Iterable[str],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        on_event: Callable[[dict[str, Any]], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> dict[str, Any]:
        """
        Polls DescribeStacks until the stack reaches one of ``desired_states``.

        Any ``*FAILED*`` or ``*ROLLBACK*`` status that is not itself desired
        raises StackOperationError. When ``DELETE_COMPLETE`` is desired, a stack
        that no longer exists counts as deleted.

        Args:
            on_event: Called with each new stack event, oldest first, while
                waiting. Failures to fetch events are logged and do not stop
                the wait.

        Raises:
            StackOperationError: The stack landed in a failed state.
            DeadlineExceededError: ``timeout`` seconds passed first. The stack
                operation itself keeps running.
        """
        desired = frozenset(desired_states)
        started = clock()
        last_event_id: str | None = None
        status: str | None = None

        while True:
            stack = self._current_stack(stack_name, desired)
            if on_event is not None:
                last_event_id = self._emit_new_events(stack_name, last_event_id, on_event)

            status = stack.get("StackStatus")
            if status in desired:
                logger.info(
                    "Stack reached desired state",
                    extra={"stack_name": stack_name, "status": status},
                )
                return stack
            if status and ("FAILED" in status or "ROLLBACK" in status):
                raise StackOperationError(stack_name, status, stack.get("StackStatusReason"))

            if clock() + poll_interval - started > timeout:
                raise DeadlineExceededError(
                    timeout, context={"stack_name": stack_name, "last_status": status}
                )
            logger.debug(
                "Waiting for stack", extra={"stack_name": stack_name, "status": status}
            )
            sleep(poll_interval)

    def wait(self, stack_name: str, waiter_name: str, **kwargs) -> dict[str, Any]:
        """Waits using a waiter name such as ``stack-create-complete``."""
        try:
            desired_states = WAITER_STATES[waiter_name]
        except KeyError:
            raise ValidationError(
                f"Unknown waiter: {waiter_name}",
                code="InvalidArgument",
                context={"known_waiters": sorted(WAITER_STATES)},
            ) from None
        return self.wait_for_stack(stack_name, desired_states, **kwargs)

    def _current_stack(self, stack_name: str, desired: frozenset) -> dict[str, Any]:
        try:
            stacks = self.describe_stacks(stack_name)["Stacks"]
        except ValidationError as e:
            # CloudFormation reports a missing stack as a 400 ValidationError.
            if "DELETE_COMPLETE" in desired and "does not exist" in e.message:
                return {"StackName": stack_name, "StackStatus": "DELETE_COMPLETE"}
            raise
        if not stacks:
            if "DELETE_COMPLETE" in desired:
                return {"StackName": stack_name, "StackStatus": "DELETE_COMPLETE"}
            raise NotFoundError(
                f"Stack {stack_name} does not exist",
                code="StackNotFound",
                context={"stack_name": stack_name},
            )
        return stacks[0]

    def _emit_new_events(
        self,
        stack_name: str,
        last_event_id: str | None,
        on_event: Callable[[dict[str, Any]], None],
    ) -> str | None:
        try:
            events = self.describe_stack_events(stack_name)["StackEvents"]
        except AwsWireError as e:
            logger.warning(
                "Could not fetch stack events",
                extra={"stack_name": stack_name, **get_error_context(e)},
            )
            return last_event_id
        if not events:
            return last_event_id

        if last_event_id is None:
            new_events = [events[0]]
        else:
            new_events = []
            for event in events:
                if event.get("EventId") == last_event_id:
                    break
                new_events.append(event)
            new_events.reverse()

        for event in new_events:
            on_event(event)
        return events[0].get("EventId")
