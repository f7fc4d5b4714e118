# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/aws/provisioner.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ..errors import InvalidInputError, PersistError
from ..node.models import NodeKind
from ..observers.dispatcher import EventBus
from ..observers.events import SpecSynced, StackFailed, new_ctx
from ..spec import store
from ..spec.models import AwsResources, ClusterSpec
from .cloudformation import CloudFormationManager, Stack, StackName, StackStatus

log = logging.getLogger("avalops")

STACK_TAGS = {"KIND": "avalanche-ops"}


@dataclass
class TemplateSet:
    """CloudFormation template body per stack."""
    bodies: Dict[StackName, str] = field(default_factory=dict)

    @classmethod
    def from_dir(cls, path: str | Path) -> "TemplateSet":
        """Reads ``{stack}.yaml`` (e.g. ``vpc.yaml``) for every stack present in ``path``."""
        path = Path(path)
        bodies = {}
        for name in StackName:
            f = path / f"{name.value}.yaml"
            if f.is_file():
                bodies[name] = f.read_text(encoding="utf-8")
        return cls(bodies=bodies)

    def get(self, name: StackName) -> str:
        try:
            return self.bodies[name]
        except KeyError:
            raise InvalidInputError(
                f"no template for stack '{name.value}'",
                field="templates",
                value=name.value,
            ) from None


class ClusterProvisioner:
    """
    Brings the cluster's stacks up in dependency order:

        ec2-instance-role -> vpc -> asg-anchor-nodes (custom networks) -> asg-non-anchor-nodes

    and tears them down in reverse. The spec file is rewritten after every
    stack so an interrupted run leaves a record of what exists.
    """

    def __init__(
        self,
        spec: ClusterSpec,
        spec_path: str | Path,
        cfn: CloudFormationManager,
        templates: TemplateSet,
        *,
        bus: Optional[EventBus] = None,
        timeout: float = 900,
        interval: float = 20,
    ):
        self.spec = spec
        self.spec_path = Path(spec_path)
        self.cfn = cfn
        self.templates = templates
        self.bus = bus
        self.timeout = timeout
        self.interval = interval

        if self.spec.aws_resources is None:
            raise InvalidInputError("'aws_resources' is required to provision", field="aws_resources", value=None)
        self.run_ctx = {"env": spec.id, "context": spec.aws_resources.region, "run_id": bus.run_id if bus else None}

    @property
    def resources(self) -> AwsResources:
        return self.spec.aws_resources

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    def _sync(self) -> None:
        try:
            store.sync(self.spec, self.spec_path)
        except (OSError, yaml.YAMLError) as e:
            log.error("[provision] failed to persist spec to %s: %s", self.spec_path, e)
            raise PersistError(
                f"stacks changed but spec {self.spec_path} could not be written: {e}",
                path=str(self.spec_path),
            ) from e
        if self.bus is not None:
            self.bus.emit(SpecSynced(path=str(self.spec_path), **new_ctx(**self.run_ctx)))

    async def _create(
        self,
        name: StackName,
        parameters: Dict[str, str],
        capabilities: Optional[List[str]] = None,
    ) -> Stack:
        stack_name = name.encode(self.spec.id)
        try:
            await self.cfn.create_stack(
                stack_name,
                template_body=self.templates.get(name),
                capabilities=capabilities,
                on_failure="DELETE",
                tags=dict(STACK_TAGS),
                parameters=parameters,
            )
            return await self.cfn.poll_stack(
                stack_name,
                StackStatus.CREATE_COMPLETE,
                timeout=self.timeout,
                interval=self.interval,
            )
        except Exception as e:
            if self.bus is not None:
                self.bus.emit(StackFailed(name=stack_name, error=str(e), **new_ctx(**self.run_ctx)))
            raise

    def _base_parameters(self) -> Dict[str, str]:
        params = {"Id": self.spec.id, "S3BucketName": self.resources.s3_bucket}
        if self.resources.kms_cmk_arn:
            params["KmsCmkArn"] = self.resources.kms_cmk_arn
        return params

    def _asg_parameters(self, kind: NodeKind, count: int) -> Dict[str, str]:
        res = self.resources
        instance_types = self.spec.machine.instance_types or []
        params = self._base_parameters()
        params.update(
            {
                "NetworkId": str(self.spec.avalanchego_config.network_id),
                "NodeKind": kind.value,
                "InstanceProfileArn": res.cloudformation_ec2_instance_profile_arn or "",
                "PublicSubnetIds": ",".join(res.cloudformation_vpc_public_subnet_ids or []),
                "SecurityGroupId": res.cloudformation_vpc_security_group_id or "",
                "NlbVpcId": res.cloudformation_vpc_id or "",
                "NlbHttpPort": str(self.spec.avalanchego_config.http_port),
                "AsgMinSize": str(count),
                "AsgMaxSize": str(count),
                "AsgDesiredCapacity": str(count),
            }
        )
        if instance_types:
            params["InstanceTypes"] = ",".join(instance_types)
            params["InstanceTypesCount"] = str(len(instance_types))
        if res.nlb_acm_certificate_arn:
            params["NlbAcmCertificateArn"] = res.nlb_acm_certificate_arn
        # non-anchor nodes join the load balancer the anchor stack created
        if res.cloudformation_asg_nlb_target_group_arn:
            params["NlbTargetGroupArn"] = res.cloudformation_asg_nlb_target_group_arn
        return params

    def _record_nlb(self, outputs: Dict[str, str]) -> None:
        res = self.resources
        if "NlbArn" in outputs:
            res.cloudformation_asg_nlb_arn = outputs["NlbArn"]
        if "NlbTargetGroupArn" in outputs:
            res.cloudformation_asg_nlb_target_group_arn = outputs["NlbTargetGroupArn"]
        if "NlbDnsName" in outputs:
            res.cloudformation_asg_nlb_dns_name = outputs["NlbDnsName"]

    # -------------------------------------------------------------------------
    # apply
    # -------------------------------------------------------------------------

    async def apply(self) -> ClusterSpec:
        res = self.resources
        log.info("[provision] applying stacks for %s", self.spec.id)

        # instance role
        res.cloudformation_ec2_instance_role = StackName.EC2_INSTANCE_ROLE.encode(self.spec.id)
        self._sync()
        params = self._base_parameters()
        if res.db_backup_s3_bucket:
            params["S3BucketDbBackupName"] = res.db_backup_s3_bucket
        stack = await self._create(StackName.EC2_INSTANCE_ROLE, params, capabilities=["CAPABILITY_NAMED_IAM"])
        res.cloudformation_ec2_instance_profile_arn = stack.outputs.get("InstanceProfileArn")
        self._sync()

        # network
        res.cloudformation_vpc = StackName.VPC.encode(self.spec.id)
        self._sync()
        stack = await self._create(StackName.VPC, {"Id": self.spec.id})
        res.cloudformation_vpc_id = stack.outputs.get("VpcId")
        res.cloudformation_vpc_security_group_id = stack.outputs.get("SecurityGroupId")
        subnets = stack.outputs.get("PublicSubnetIds", "")
        res.cloudformation_vpc_public_subnet_ids = [s.strip() for s in subnets.split(",") if s.strip()]
        self._sync()

        # anchor nodes only exist on custom networks
        anchors = self.spec.machine.anchor_nodes or 0
        if self.spec.avalanchego_config.is_custom_network() and anchors > 0:
            res.cloudformation_asg_anchor_nodes = StackName.ASG_ANCHOR_NODES.encode(self.spec.id)
            self._sync()
            stack = await self._create(
                StackName.ASG_ANCHOR_NODES,
                self._asg_parameters(NodeKind.ANCHOR, anchors),
            )
            res.cloudformation_asg_anchor_nodes_logical_id = stack.outputs.get("AsgLogicalId")
            self._record_nlb(stack.outputs)
            self._sync()

        res.cloudformation_asg_non_anchor_nodes = StackName.ASG_NON_ANCHOR_NODES.encode(self.spec.id)
        self._sync()
        stack = await self._create(
            StackName.ASG_NON_ANCHOR_NODES,
            self._asg_parameters(NodeKind.NON_ANCHOR, self.spec.machine.non_anchor_nodes),
        )
        res.cloudformation_asg_non_anchor_nodes_logical_id = stack.outputs.get("AsgLogicalId")
        self._record_nlb(stack.outputs)
        self._sync()

        log.info("[provision] all stacks for %s are up", self.spec.id)
        return self.spec

    # -------------------------------------------------------------------------
    # delete
    # -------------------------------------------------------------------------

    async def delete(self) -> None:
        res = self.resources
        order = [
            (StackName.ASG_NON_ANCHOR_NODES, "cloudformation_asg_non_anchor_nodes"),
            (StackName.ASG_ANCHOR_NODES, "cloudformation_asg_anchor_nodes"),
            (StackName.VPC, "cloudformation_vpc"),
            (StackName.EC2_INSTANCE_ROLE, "cloudformation_ec2_instance_role"),
        ]
        log.info("[provision] deleting stacks for %s", self.spec.id)

        for name, attr in order:
            if name is StackName.ASG_ANCHOR_NODES and not self.spec.avalanchego_config.is_custom_network():
                continue
            stack_name = getattr(res, attr) or name.encode(self.spec.id)
            await self.cfn.delete_stack(stack_name)
            await self.cfn.poll_stack(
                stack_name,
                StackStatus.DELETE_COMPLETE,
                timeout=self.timeout,
                interval=self.interval,
            )
            setattr(res, attr, None)
            self._sync()

        res.cloudformation_ec2_instance_profile_arn = None
        res.cloudformation_vpc_id = None
        res.cloudformation_vpc_security_group_id = None
        res.cloudformation_vpc_public_subnet_ids = None
        res.cloudformation_asg_anchor_nodes_logical_id = None
        res.cloudformation_asg_non_anchor_nodes_logical_id = None
        res.cloudformation_asg_nlb_arn = None
        res.cloudformation_asg_nlb_target_group_arn = None
        res.cloudformation_asg_nlb_dns_name = None
        self._sync()
        log.info("[provision] all stacks for %s deleted", self.spec.id)
