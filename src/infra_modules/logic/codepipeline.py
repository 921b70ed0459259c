"""
Renderer for the codepipeline module.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, role_declarations
from infra_modules.models.arns import build_arn, lambda_function_arn, s3_bucket_arn
from infra_modules.models.codepipeline import CodePipelineConfig, PipelineAction
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact

MODULE_NAME = 'codepipeline'

KMS_ACTIONS = ['kms:Decrypt', 'kms:Encrypt', 'kms:ReEncrypt*', 'kms:GenerateDataKey*', 'kms:DescribeKey']


def _values(actions: list[PipelineAction], provider: str, key: str) -> list[str]:
    return [str(action.configuration[key]) for action in actions if action.provider == provider and key in action.configuration]


def _scoped(value: str, partition: str, service: str, region: str, account: str, resource: str) -> str:
    """Use a literal ARN as-is; otherwise build one around the name."""
    if value.startswith('arn:'):
        return value
    return build_arn(partition, service, region, account, resource.format(value))


def pipeline_policy(config: CodePipelineConfig, context: AwsContext) -> PolicyDocument:
    """
    Derive the pipeline role policy from the artifact store and the providers in use.

    Args:
        config: Validated pipeline configuration
        context: Target account and region

    Returns:
        Policy document
    """
    partition, region, account = context.partition, context.region, context.account_id
    actions = config.actions()
    providers = config.providers
    policy = PolicyDocument()

    bucket_arn = s3_bucket_arn(partition, config.artifact_store.bucket)
    policy.add(PolicyStatement(
        sid='ArtifactStore',
        actions=[
            's3:GetObject', 's3:GetObjectVersion', 's3:GetBucketVersioning', 's3:GetBucketAcl',
            's3:GetBucketLocation', 's3:PutObject', 's3:PutObjectAcl',
        ],
        resources=[bucket_arn, f'{bucket_arn}/*'],
    ))
    if config.artifact_store.kms_key_arn is not None:
        policy.add(PolicyStatement(sid='ArtifactStoreKms', actions=KMS_ACTIONS, resources=[config.artifact_store.kms_key_arn]))

    role_arns = [action.role_arn for action in actions if action.role_arn is not None]
    if role_arns:
        policy.add(PolicyStatement(sid='AssumeActionRoles', actions=['sts:AssumeRole'], resources=role_arns))

    if 'CodeBuild' in providers:
        policy.add(PolicyStatement(
            sid='CodeBuild',
            actions=['codebuild:BatchGetBuilds', 'codebuild:StartBuild', 'codebuild:BatchGetBuildBatches', 'codebuild:StartBuildBatch'],
            resources=[
                _scoped(name, partition, 'codebuild', region, account, 'project/{}')
                for name in _values(actions, 'CodeBuild', 'ProjectName')
            ],
        ))

    if 'CodeCommit' in providers:
        policy.add(PolicyStatement(
            sid='CodeCommit',
            actions=[
                'codecommit:GetBranch', 'codecommit:GetCommit', 'codecommit:UploadArchive',
                'codecommit:GetUploadArchiveStatus', 'codecommit:CancelUploadArchive',
            ],
            resources=[
                _scoped(name, partition, 'codecommit', region, account, '{}')
                for name in _values(actions, 'CodeCommit', 'RepositoryName')
            ],
        ))

    if 'CodeStarSourceConnection' in providers:
        policy.add(PolicyStatement(
            sid='CodeStarConnection',
            actions=['codestar-connections:UseConnection', 'codeconnections:UseConnection'],
            resources=_values(actions, 'CodeStarSourceConnection', 'ConnectionArn'),
        ))

    if 'S3' in providers:
        source_buckets = [
            s3_bucket_arn(partition, str(action.configuration['S3Bucket']))
            for action in actions if action.provider == 'S3' and action.category == 'Source'
        ]
        if source_buckets:
            policy.add(PolicyStatement(
                sid='S3Source',
                actions=['s3:GetObject', 's3:GetObjectVersion', 's3:GetBucketVersioning'],
                resources=source_buckets + [f'{arn}/*' for arn in source_buckets],
            ))
        deploy_buckets = [
            s3_bucket_arn(partition, str(action.configuration['BucketName']))
            for action in actions if action.provider == 'S3' and action.category == 'Deploy'
        ]
        if deploy_buckets:
            policy.add(PolicyStatement(
                sid='S3Deploy',
                actions=['s3:PutObject', 's3:PutObjectAcl', 's3:GetBucketLocation'],
                resources=deploy_buckets + [f'{arn}/*' for arn in deploy_buckets],
            ))

    if 'ECR' in providers:
        policy.add(PolicyStatement(
            sid='Ecr',
            actions=['ecr:DescribeImages'],
            resources=[
                _scoped(name, partition, 'ecr', region, account, 'repository/{}')
                for name in _values(actions, 'ECR', 'RepositoryName')
            ],
        ))

    codedeploy_actions = [action for action in actions if action.provider in ('CodeDeploy', 'CodeDeployToECS')]
    if codedeploy_actions:
        resources = []
        for action in codedeploy_actions:
            application = action.configuration['ApplicationName']
            group = action.configuration['DeploymentGroupName']
            resources.append(build_arn(partition, 'codedeploy', region, account, f'application:{application}'))
            resources.append(build_arn(partition, 'codedeploy', region, account, f'deploymentgroup:{application}/{group}'))
        resources.append(build_arn(partition, 'codedeploy', region, account, 'deploymentconfig:*'))
        policy.add(PolicyStatement(
            sid='CodeDeploy',
            actions=[
                'codedeploy:CreateDeployment', 'codedeploy:GetApplication', 'codedeploy:GetApplicationRevision',
                'codedeploy:GetDeployment', 'codedeploy:GetDeploymentConfig', 'codedeploy:RegisterApplicationRevision',
            ],
            resources=resources,
        ))

    if 'Lambda' in providers:
        policy.add(PolicyStatement(
            sid='LambdaInvoke',
            actions=['lambda:InvokeFunction'],
            resources=[
                lambda_function_arn(partition, region, account, name)
                for name in _values(actions, 'Lambda', 'FunctionName')
            ],
        ))

    if 'StepFunctions' in providers:
        state_machines = _values(actions, 'StepFunctions', 'StateMachineArn')
        policy.add(PolicyStatement(
            sid='StepFunctions',
            actions=['states:StartExecution', 'states:DescribeStateMachine', 'states:DescribeExecution'],
            resources=state_machines + [
                arn.replace(':stateMachine:', ':execution:') + ':*' for arn in state_machines
            ],
        ))

    if 'CloudFormation' in providers:
        policy.add(PolicyStatement(
            sid='CloudFormation',
            actions=[
                'cloudformation:CreateStack', 'cloudformation:DeleteStack', 'cloudformation:DescribeStacks',
                'cloudformation:UpdateStack', 'cloudformation:CreateChangeSet', 'cloudformation:DeleteChangeSet',
                'cloudformation:DescribeChangeSet', 'cloudformation:ExecuteChangeSet',
                'cloudformation:SetStackPolicy', 'cloudformation:ValidateTemplate',
            ],
            resources=[
                build_arn(partition, 'cloudformation', region, account, f'stack/{name}/*')
                for name in _values(actions, 'CloudFormation', 'StackName')
            ],
        ))
        policy.add(PolicyStatement(
            sid='CloudFormationPassRole',
            actions=['iam:PassRole'],
            resources=_values(actions, 'CloudFormation', 'RoleArn') or ['*'],
            conditions={'StringEqualsIfExists': {'iam:PassedToService': 'cloudformation.amazonaws.com'}},
        ))

    if 'ECS' in providers or 'CodeDeployToECS' in providers:
        policy.add(PolicyStatement(
            sid='Ecs',
            actions=[
                'ecs:DescribeServices', 'ecs:DescribeTaskDefinition', 'ecs:DescribeTasks', 'ecs:ListTasks',
                'ecs:RegisterTaskDefinition', 'ecs:UpdateService', 'ecs:TagResource',
            ],
        ))
        policy.add(PolicyStatement(
            sid='EcsPassRole',
            actions=['iam:PassRole'],
            conditions={'StringEqualsIfExists': {'iam:PassedToService': 'ecs-tasks.amazonaws.com'}},
        ))
    return policy


def _action_arguments(action: PipelineAction) -> dict:
    return compact({
        'name': action.name,
        'category': action.category,
        'owner': action.owner,
        'provider': action.provider,
        'version': action.version,
        'configuration': {key: str(value) for key, value in action.configuration.items()} or None,
        'input_artifacts': action.input_artifacts or None,
        'output_artifacts': action.output_artifacts or None,
        'run_order': action.run_order,
        'namespace': action.namespace,
        'role_arn': action.role_arn,
        'region': action.region,
    })


def render_codepipeline(config: CodePipelineConfig, context: AwsContext) -> RenderedModule:
    """
    Render a pipeline and, unless a role is supplied, its service role.

    Args:
        config: Validated pipeline configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources: list[ResourceDeclaration] = []

    role_arn = config.role_arn
    if role_arn is None:
        role_resources = role_declarations(
            role_name=f'{config.name}-pipeline'[:64],
            services=['codepipeline.amazonaws.com'],
            policy=pipeline_policy(config, context),
            tags=tags,
        )
        resources += role_resources
        role_arn = role_resources[0].ref('arn')

    artifact_store = {'location': config.artifact_store.bucket, 'type': 'S3'}
    if config.artifact_store.kms_key_arn is not None:
        artifact_store['encryption_key'] = {'id': config.artifact_store.kms_key_arn, 'type': 'KMS'}

    pipeline = ResourceDeclaration(
        type='aws_codepipeline',
        name='this',
        arguments=compact({
            'name': config.name,
            'role_arn': role_arn,
            'pipeline_type': config.pipeline_type,
            'execution_mode': config.execution_mode,
            'artifact_store': [artifact_store],
            'stage': [
                {'name': stage.name, 'action': [_action_arguments(action) for action in stage.actions]}
                for stage in config.stages
            ],
            'variable': [compact(variable.model_dump()) for variable in config.variables] or None,
            'tags': tags,
        }),
    )
    resources.append(pipeline)

    outputs = {
        'pipeline_name': pipeline.ref('name'),
        'pipeline_arn': pipeline.ref('arn'),
        'role_arn': role_arn,
    }
    logger.debug('Rendered CodePipeline', extra={
        'pipeline': config.name,
        'stage_count': len(config.stages),
        'providers': sorted(config.providers),
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
