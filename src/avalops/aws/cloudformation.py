# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/aws/cloudformation.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import boto3
import botocore.exceptions
from botocore.config import Config

from ..errors import ProviderError, TimedOutError
from ..observers.dispatcher import EventBus
from ..observers.events import (
    StackCreateRequested,
    StackDeleteRequested,
    StackReady,
    StackStatusUpdate,
    StackTimedOut,
    new_ctx,
)

log = logging.getLogger("avalops")

BOTO_CONFIG = Config(retries={"max_attempts": 5, "mode": "standard"})


class StackStatus(str, Enum):
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_FAILED = "CREATE_FAILED"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_FAILED = "DELETE_FAILED"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
    UPDATE_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    UPDATE_FAILED = "UPDATE_FAILED"
    UPDATE_ROLLBACK_IN_PROGRESS = "UPDATE_ROLLBACK_IN_PROGRESS"
    UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"
    UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
    REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    IMPORT_ROLLBACK_IN_PROGRESS = "IMPORT_ROLLBACK_IN_PROGRESS"
    IMPORT_ROLLBACK_FAILED = "IMPORT_ROLLBACK_FAILED"
    IMPORT_ROLLBACK_COMPLETE = "IMPORT_ROLLBACK_COMPLETE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    @property
    def is_failed(self) -> bool:
        """Terminal states the stack cannot leave without operator action."""
        return self.value.endswith("_FAILED") or self in (
            StackStatus.ROLLBACK_COMPLETE,
            StackStatus.UPDATE_ROLLBACK_COMPLETE,
            StackStatus.IMPORT_ROLLBACK_COMPLETE,
        )


@dataclass
class Stack:
    name: str
    status: StackStatus
    outputs: Dict[str, str] = field(default_factory=dict)
    reason: Optional[str] = None
    id: Optional[str] = None


class StackName(str, Enum):
    EC2_INSTANCE_ROLE = "ec2-instance-role"
    VPC = "vpc"
    ASG_ANCHOR_NODES = "asg-anchor-nodes"
    ASG_NON_ANCHOR_NODES = "asg-non-anchor-nodes"

    def encode(self, cluster_id: str) -> str:
        return f"{cluster_id}-{self.value}"


def _error_code(e: botocore.exceptions.ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "ClientError")


def _error_message(e: botocore.exceptions.ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


def _does_not_exist(e: botocore.exceptions.ClientError) -> bool:
    # CloudFormation answers ValidationError "Stack with id X does not exist"
    return "does not exist" in _error_message(e)


class CloudFormationManager:
    """
    create / poll / delete for CloudFormation stacks.

    create and delete are single requests and are never retried here. Only
    poll loops, and it sleeps between describe calls with asyncio.sleep so
    the caller can cancel it.
    """

    def __init__(
        self,
        client=None,
        *,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        bus: Optional[EventBus] = None,
        env: str = "local",
    ):
        if client is None:
            session = boto3.session.Session(profile_name=profile, region_name=region)
            client = session.client("cloudformation", config=BOTO_CONFIG)
        self.client = client
        self.bus = bus
        self.run_ctx = {"env": env, "context": region, "run_id": bus.run_id if bus else None}

    def _emit(self, event_cls, **kwargs) -> None:
        if self.bus is None:
            return
        self.bus.emit(event_cls(**kwargs, **new_ctx(**self.run_ctx)))

    # -------------------------------------------------------------------------
    # create
    # -------------------------------------------------------------------------

    async def create_stack(
        self,
        name: str,
        *,
        template_body: str,
        capabilities: Optional[List[str]] = None,
        on_failure: str = "DELETE",
        tags: Optional[Dict[str, str]] = None,
        parameters: Optional[Dict[str, str]] = None,
    ) -> Stack:
        log.info("[cfn] creating stack '%s'", name)
        self._emit(StackCreateRequested, name=name)

        req = {
            "StackName": name,
            "TemplateBody": template_body,
            "OnFailure": on_failure,
        }
        if capabilities:
            req["Capabilities"] = list(capabilities)
        if tags:
            req["Tags"] = [{"Key": k, "Value": v} for k, v in tags.items()]
        if parameters:
            req["Parameters"] = [
                {"ParameterKey": k, "ParameterValue": v} for k, v in parameters.items()
            ]

        try:
            resp = await asyncio.to_thread(self.client.create_stack, **req)
        except botocore.exceptions.ClientError as e:
            raise ProviderError(
                f"failed create_stack '{name}': {_error_message(e)}",
                operation="create_stack",
                code=_error_code(e),
            ) from e

        stack_id = resp.get("StackId")
        log.info("[cfn] created stack '%s' (%s)", name, stack_id)
        return Stack(name=name, status=StackStatus.CREATE_IN_PROGRESS, id=stack_id)

    # -------------------------------------------------------------------------
    # delete
    # -------------------------------------------------------------------------

    async def delete_stack(self, name: str) -> Stack:
        """Deleting a stack that does not exist succeeds."""
        log.info("[cfn] deleting stack '%s'", name)
        self._emit(StackDeleteRequested, name=name)

        try:
            await asyncio.to_thread(self.client.delete_stack, StackName=name)
        except botocore.exceptions.ClientError as e:
            if _does_not_exist(e):
                log.info("[cfn] stack '%s' already gone", name)
                return Stack(name=name, status=StackStatus.DELETE_COMPLETE)
            raise ProviderError(
                f"failed delete_stack '{name}': {_error_message(e)}",
                operation="delete_stack",
                code=_error_code(e),
            ) from e

        return Stack(name=name, status=StackStatus.DELETE_IN_PROGRESS)

    # -------------------------------------------------------------------------
    # poll
    # -------------------------------------------------------------------------

    async def _describe(self, name: str) -> Optional[Stack]:
        resp = await asyncio.to_thread(self.client.describe_stacks, StackName=name)
        stacks = resp.get("Stacks") or []
        if not stacks:
            return None
        st = stacks[0]
        outputs = {
            o["OutputKey"]: o.get("OutputValue", "")
            for o in st.get("Outputs") or []
            if "OutputKey" in o
        }
        return Stack(
            name=st.get("StackName", name),
            status=StackStatus(st.get("StackStatus", "UNKNOWN")),
            outputs=outputs,
            reason=st.get("StackStatusReason"),
            id=st.get("StackId"),
        )

    async def poll_stack(
        self,
        name: str,
        target: StackStatus,
        *,
        timeout: float,
        interval: float,
    ) -> Stack:
        """
        Describe ``name`` every ``interval`` seconds until its status is
        ``target``. A missing stack satisfies a DELETE_COMPLETE target; for
        any other target a stack that vanishes after being seen is a failure.
        Describe errors are logged and retried until the deadline.
        """
        target = StackStatus(target)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_status: Optional[StackStatus] = None

        log.info("[cfn] polling '%s' for %s (timeout %ss, interval %ss)", name, target.value, timeout, interval)

        while True:
            stack: Optional[Stack] = None
            gone = False
            try:
                stack = await self._describe(name)
                gone = stack is None
            except botocore.exceptions.ClientError as e:
                if _does_not_exist(e):
                    gone = True
                else:
                    log.warning("[cfn] describe '%s' failed, retrying: %s", name, _error_message(e))
            except botocore.exceptions.BotoCoreError as e:
                log.warning("[cfn] describe '%s' failed, retrying: %s", name, e)

            if gone and target is StackStatus.DELETE_COMPLETE:
                log.info("[cfn] stack '%s' deleted", name)
                return Stack(name=name, status=StackStatus.DELETE_COMPLETE)

            if gone and last_status is not None:
                # seen earlier, now gone: rolled back and deleted (on_failure=DELETE)
                self._emit(StackStatusUpdate, name=name, status=StackStatus.DELETE_COMPLETE.value)
                raise ProviderError(
                    f"stack '{name}' disappeared after {last_status.value} while waiting for {target.value}",
                    operation="poll_stack",
                    code=StackStatus.DELETE_COMPLETE.value,
                )

            if stack is not None:
                last_status = stack.status
                log.debug("[cfn] stack '%s' status %s", name, stack.status.value)
                self._emit(StackStatusUpdate, name=name, status=stack.status.value)

                if stack.status is target:
                    log.info("[cfn] stack '%s' reached %s", name, target.value)
                    self._emit(StackReady, name=name, status=stack.status.value, outputs=dict(stack.outputs))
                    return stack

                if stack.status.is_failed or (
                    stack.status is StackStatus.DELETE_COMPLETE and target is not StackStatus.DELETE_COMPLETE
                ):
                    raise ProviderError(
                        f"stack '{name}' reached {stack.status.value} while waiting for {target.value}"
                        + (f": {stack.reason}" if stack.reason else ""),
                        operation="poll_stack",
                        code=stack.status.value,
                    )

            remaining = deadline - loop.time()
            if remaining <= 0:
                self._emit(
                    StackTimedOut,
                    name=name,
                    last_status=last_status.value if last_status else None,
                    timeout_s=int(timeout),
                )
                raise TimedOutError(
                    f"stack '{name}' not {target.value} after {timeout} seconds "
                    f"(last status {last_status.value if last_status else 'unknown'})",
                    name=name,
                    last_status=last_status,
                )

            await asyncio.sleep(min(interval, remaining))
