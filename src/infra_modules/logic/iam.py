"""
IAM policy document assembly.

Renderers build policies statement by statement, usually gated on the same
feature flags that decide which resources a module declares.
"""

from dataclasses import dataclass, field
from typing import Any

from infra_modules.models.common import ResourceDeclaration

POLICY_VERSION = '2012-10-17'


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


@dataclass
class PolicyStatement:
    """A single IAM policy statement."""

    sid: str
    actions: list[str]
    resources: list[str] = field(default_factory=lambda: ['*'])
    effect: str = 'Allow'
    principals: dict[str, Any] | None = None
    conditions: dict[str, dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        statement: dict[str, Any] = {
            'Sid': self.sid,
            'Effect': self.effect,
        }
        if self.principals is not None:
            statement['Principal'] = self.principals
        statement['Action'] = sorted(set(self.actions))
        statement['Resource'] = _unique(self.resources)
        if self.conditions:
            statement['Condition'] = self.conditions
        return statement


@dataclass
class PolicyDocument:
    """An ordered collection of statements with unique sids."""

    statements: list[PolicyStatement] = field(default_factory=list)

    def add(self, statement: PolicyStatement) -> 'PolicyDocument':
        """
        Add a statement, merging actions and resources into an existing statement with the same sid.

        Returns:
            The document, for chaining
        """
        existing = self.get(statement.sid)
        if existing is None:
            self.statements.append(statement)
        else:
            existing.actions = existing.actions + statement.actions
            existing.resources = _unique(existing.resources + statement.resources)
        return self

    def get(self, sid: str) -> PolicyStatement | None:
        for statement in self.statements:
            if statement.sid == sid:
                return statement
        return None

    def has_statement(self, sid: str) -> bool:
        return self.get(sid) is not None

    @property
    def sids(self) -> list[str]:
        return [statement.sid for statement in self.statements]

    def actions(self) -> list[str]:
        """All actions granted by the document."""
        return sorted({action for statement in self.statements for action in statement.actions})

    def to_dict(self) -> dict[str, Any]:
        return {
            'Version': POLICY_VERSION,
            'Statement': [statement.to_dict() for statement in self.statements],
        }

    def __bool__(self) -> bool:
        return bool(self.statements)


def assume_role_policy(*services: str, conditions: dict[str, dict[str, Any]] | None = None) -> dict[str, Any]:
    """Trust policy allowing the given service principals to assume a role."""
    statement = PolicyStatement(
        sid='AssumeRole',
        actions=['sts:AssumeRole'],
        principals={'Service': list(services) if len(services) > 1 else services[0]},
        conditions=conditions,
    ).to_dict()
    statement.pop('Resource')
    return {'Version': POLICY_VERSION, 'Statement': [statement]}


def role_declarations(
    role_name: str,
    services: list[str],
    policy: PolicyDocument,
    tags: dict[str, str],
    managed_policy_arns: list[str] | None = None,
    local_name: str = 'this',
) -> list[ResourceDeclaration]:
    """
    Declare an IAM role with an inline policy and optional managed policy attachments.

    Args:
        role_name: Name of the role
        services: Service principals trusted by the role
        policy: Inline policy document; skipped when empty
        tags: Tags for the role
        managed_policy_arns: Managed policies to attach
        local_name: Local name shared by the declared resources

    Returns:
        List of resource declarations, role first
    """
    role = ResourceDeclaration(
        type='aws_iam_role',
        name=local_name,
        arguments={
            'name': role_name,
            'assume_role_policy': assume_role_policy(*services),
            'tags': tags,
        },
    )
    declarations = [role]
    if policy:
        declarations.append(ResourceDeclaration(
            type='aws_iam_role_policy',
            name=local_name,
            arguments={
                'name': f'{role_name}-policy',
                'role': role.ref('id'),
                'policy': policy.to_dict(),
            },
        ))
    for index, policy_arn in enumerate(managed_policy_arns or []):
        declarations.append(ResourceDeclaration(
            type='aws_iam_role_policy_attachment',
            name=f'{local_name}_{index}',
            arguments={'role': role.ref('name'), 'policy_arn': policy_arn},
        ))
    return declarations
