"""
Input model for the codepipeline module.

Stage and action validation follows the artifact flow: every input artifact
must be produced by an earlier stage, or by an action with a lower run order
in the same stage.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_modules.models.arns import check_arn
from infra_modules.models.common import ModuleConfig, find_duplicates

ActionCategory = Literal['Source', 'Build', 'Test', 'Deploy', 'Approval', 'Invoke']

# Providers accepted per (category, owner)
PROVIDERS: dict[tuple[str, str], tuple[str, ...]] = {
    ('Source', 'AWS'): ('CodeCommit', 'S3', 'ECR'),
    ('Source', 'ThirdParty'): ('GitHub',),
    ('Source', 'AWS_CODESTAR'): ('CodeStarSourceConnection',),
    ('Build', 'AWS'): ('CodeBuild',),
    ('Test', 'AWS'): ('CodeBuild',),
    ('Deploy', 'AWS'): ('CodeDeploy', 'CodeDeployToECS', 'CloudFormation', 'ECS', 'S3'),
    ('Approval', 'AWS'): ('Manual',),
    ('Invoke', 'AWS'): ('Lambda', 'StepFunctions'),
}

# Configuration keys each provider cannot run without
REQUIRED_CONFIGURATION: dict[str, tuple[str, ...]] = {
    'CodeCommit': ('RepositoryName', 'BranchName'),
    'ECR': ('RepositoryName',),
    'GitHub': ('Owner', 'Repo', 'Branch'),
    'CodeStarSourceConnection': ('ConnectionArn', 'FullRepositoryId', 'BranchName'),
    'CodeBuild': ('ProjectName',),
    'CodeDeploy': ('ApplicationName', 'DeploymentGroupName'),
    'CodeDeployToECS': ('ApplicationName', 'DeploymentGroupName', 'TaskDefinitionTemplateArtifact', 'AppSpecTemplateArtifact'),
    'CloudFormation': ('ActionMode', 'StackName'),
    'ECS': ('ClusterName', 'ServiceName'),
    'Lambda': ('FunctionName',),
    'StepFunctions': ('StateMachineArn',),
}

S3_SOURCE_CONFIGURATION = ('S3Bucket', 'S3ObjectKey')

S3_DEPLOY_CONFIGURATION = ('BucketName', 'Extract')


class PipelineAction(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=100, pattern=r'^[A-Za-z0-9.@_-]+$')]

    category: ActionCategory

    provider: Annotated[str, Field(min_length=1)]

    owner: Literal['AWS', 'ThirdParty', 'AWS_CODESTAR'] = 'AWS'

    version: str = '1'

    configuration: dict[str, Any] = Field(default_factory=dict)

    input_artifacts: list[str] = Field(default_factory=list)

    output_artifacts: list[str] = Field(default_factory=list)

    run_order: Annotated[int, Field(default=1, ge=1, le=999)] = 1

    namespace: Annotated[str | None, Field(default=None, pattern=r'^[A-Za-z0-9@_-]+$')] = None

    role_arn: str | None = None

    region: str | None = None

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @model_validator(mode='after')
    def check_provider(self) -> 'PipelineAction':
        """Provider must exist for the category and owner, and carry its required configuration."""
        providers = PROVIDERS.get((self.category, self.owner), ())
        if self.provider not in providers:
            raise ValueError(
                f"action '{self.name}': provider '{self.provider}' is not valid for "
                f"category {self.category} and owner {self.owner}"
            )
        missing = [key for key in REQUIRED_CONFIGURATION.get(self.provider, ()) if key not in self.configuration]
        if missing:
            raise ValueError(f"action '{self.name}': {self.provider} requires configuration {', '.join(missing)}")
        if self.provider == 'S3':
            required = S3_SOURCE_CONFIGURATION if self.category == 'Source' else S3_DEPLOY_CONFIGURATION
            missing = [key for key in required if key not in self.configuration]
            if missing:
                raise ValueError(f"action '{self.name}': S3 {self.category.lower()} actions require configuration {', '.join(missing)}")
        if self.category == 'Source':
            if self.input_artifacts:
                raise ValueError(f"source action '{self.name}' must not have input artifacts")
            if len(self.output_artifacts) != 1:
                raise ValueError(f"source action '{self.name}' must have exactly one output artifact")
        if self.category == 'Approval' and (self.input_artifacts or self.output_artifacts):
            raise ValueError(f"approval action '{self.name}' takes no artifacts")
        duplicates = find_duplicates(self.input_artifacts)
        if duplicates:
            raise ValueError(f"action '{self.name}' lists input artifacts more than once: {', '.join(duplicates)}")
        return self


class PipelineStage(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=100, pattern=r'^[A-Za-z0-9.@_-]+$')]

    actions: Annotated[list[PipelineAction], Field(min_length=1, max_length=50)]

    @field_validator('actions')
    @classmethod
    def validate_actions(cls, v: list[PipelineAction]) -> list[PipelineAction]:
        duplicates = find_duplicates([action.name for action in v])
        if duplicates:
            raise ValueError(f"duplicate action names: {', '.join(duplicates)}")
        return v


class ArtifactStore(BaseModel):
    model_config = ConfigDict(extra='forbid')

    bucket: Annotated[str, Field(min_length=3, max_length=255)]

    kms_key_arn: str | None = None

    @field_validator('kms_key_arn')
    @classmethod
    def validate_kms_key_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'kms') if v is not None else v


class PipelineVariable(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Annotated[str, Field(min_length=1, max_length=128, pattern=r'^[A-Za-z0-9@_-]+$')]

    default_value: str | None = None

    description: str | None = None


class CodePipelineConfig(ModuleConfig):
    """Input schema for the codepipeline module."""

    name: Annotated[str, Field(min_length=1, max_length=100, pattern=r'^[A-Za-z0-9.@_-]+$')]

    pipeline_type: Literal['V1', 'V2'] = 'V2'

    execution_mode: Literal['QUEUED', 'SUPERSEDED', 'PARALLEL'] = 'SUPERSEDED'

    artifact_store: ArtifactStore

    role_arn: Annotated[str | None, Field(
        default=None,
        description='Existing pipeline role; a role is created when unset'
    )] = None

    stages: Annotated[list[PipelineStage], Field(min_length=2, max_length=50)]

    variables: list[PipelineVariable] = Field(default_factory=list)

    @field_validator('role_arn')
    @classmethod
    def validate_role_arn(cls, v: str | None) -> str | None:
        return check_arn(v, 'iam') if v is not None else v

    @model_validator(mode='after')
    def check_stages(self) -> 'CodePipelineConfig':
        """Source actions only in the first stage, which holds nothing else."""
        duplicates = find_duplicates([stage.name for stage in self.stages])
        if duplicates:
            raise ValueError(f"duplicate stage names: {', '.join(duplicates)}")
        for index, stage in enumerate(self.stages):
            for action in stage.actions:
                if index == 0 and action.category != 'Source':
                    raise ValueError(f"first stage '{stage.name}' may only contain Source actions, found '{action.name}'")
                if index > 0 and action.category == 'Source':
                    raise ValueError(f"source action '{action.name}' must be in the first stage")
        return self

    @model_validator(mode='after')
    def check_artifacts(self) -> 'CodePipelineConfig':
        """Output artifacts are unique and inputs are produced before they are consumed."""
        outputs = find_duplicates([
            artifact for stage in self.stages for action in stage.actions for artifact in action.output_artifacts
        ])
        if outputs:
            raise ValueError(f"output artifacts produced more than once: {', '.join(outputs)}")

        available: set[str] = set()
        for stage in self.stages:
            produced_by_order: dict[str, int] = {}
            for action in stage.actions:
                for artifact in action.output_artifacts:
                    produced_by_order[artifact] = action.run_order
            for action in stage.actions:
                for artifact in action.input_artifacts:
                    if artifact in available:
                        continue
                    run_order = produced_by_order.get(artifact)
                    if run_order is None or run_order >= action.run_order:
                        raise ValueError(
                            f"action '{action.name}' in stage '{stage.name}' consumes artifact '{artifact}' "
                            f"before it is produced"
                        )
            available.update(produced_by_order)

        namespaces = find_duplicates([
            action.namespace for stage in self.stages for action in stage.actions if action.namespace
        ])
        if namespaces:
            raise ValueError(f"duplicate action namespaces: {', '.join(namespaces)}")
        return self

    @model_validator(mode='after')
    def check_variables(self) -> 'CodePipelineConfig':
        if self.variables and self.pipeline_type != 'V2':
            raise ValueError('pipeline variables require pipeline_type V2')
        if self.execution_mode != 'SUPERSEDED' and self.pipeline_type != 'V2':
            raise ValueError(f'execution_mode {self.execution_mode} requires pipeline_type V2')
        duplicates = find_duplicates([variable.name for variable in self.variables])
        if duplicates:
            raise ValueError(f"duplicate pipeline variables: {', '.join(duplicates)}")
        return self

    def actions(self) -> list[PipelineAction]:
        return [action for stage in self.stages for action in stage.actions]

    @property
    def providers(self) -> set[str]:
        return {action.provider for action in self.actions()}
