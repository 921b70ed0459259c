"""
Renderer for the codebuild_project module.

The service role policy is derived from the project's inputs. Each statement
has a stable sid and is only present when the feature behind it is in use,
so a project that builds from S3 never carries CodeCommit or ECR grants.
"""

from infra_modules.handlers.utils.observability import logger
from infra_modules.logic.iam import PolicyDocument, PolicyStatement, role_declarations
from infra_modules.models.arns import build_arn, is_reference, log_group_arn, s3_bucket_arn, ssm_parameter_arn
from infra_modules.models.codebuild import CodeBuildProjectConfig, bucket_of
from infra_modules.models.common import AwsContext, RenderedModule, ResourceDeclaration, compact

MODULE_NAME = 'codebuild_project'

S3_READ_WRITE_ACTIONS = [
    's3:GetObject',
    's3:GetObjectVersion',
    's3:PutObject',
    's3:GetBucketAcl',
    's3:GetBucketLocation',
]

ECR_PULL_ACTIONS = [
    'ecr:BatchCheckLayerAvailability',
    'ecr:GetDownloadUrlForLayer',
    'ecr:BatchGetImage',
]

ECR_PUSH_ACTIONS = [
    'ecr:BatchCheckLayerAvailability',
    'ecr:InitiateLayerUpload',
    'ecr:UploadLayerPart',
    'ecr:CompleteLayerUpload',
    'ecr:PutImage',
    'ecr:BatchGetImage',
]

VPC_ACTIONS = [
    'ec2:CreateNetworkInterface',
    'ec2:DescribeDhcpOptions',
    'ec2:DescribeNetworkInterfaces',
    'ec2:DeleteNetworkInterface',
    'ec2:DescribeSubnets',
    'ec2:DescribeSecurityGroups',
    'ec2:DescribeVpcs',
]


def _bucket_resources(partition: str, bucket: str) -> list[str]:
    bucket_arn = s3_bucket_arn(partition, bucket)
    return [bucket_arn, f'{bucket_arn}/*']


def _secret_arn(value: str, context: AwsContext) -> str:
    """Secret ARN for a SECRETS_MANAGER variable value (``secret-id[:json-key:stage:version]``)."""
    if value.startswith('arn:'):
        # arn:partition:secretsmanager:region:account:secret:name-suffix, optionally followed by the json key
        return ':'.join(value.split(':')[:7])
    secret_id = value.split(':', 1)[0]
    return build_arn(context.partition, 'secretsmanager', context.region, context.account_id, f'secret:{secret_id}-*')


def service_role_policy(config: CodeBuildProjectConfig, context: AwsContext) -> PolicyDocument:
    """
    Derive the service role policy for a project.

    Args:
        config: Validated project configuration
        context: Target account and region

    Returns:
        Policy document with statements for the features in use
    """
    partition, region, account = context.partition, context.region, context.account_id
    policy = PolicyDocument()

    log_group = log_group_arn(partition, region, account, log_group_name(config))
    policy.add(PolicyStatement(
        sid='CloudWatchLogs',
        actions=['logs:CreateLogGroup', 'logs:CreateLogStream', 'logs:PutLogEvents'],
        resources=[log_group, f'{log_group}:*'],
    ))
    policy.add(PolicyStatement(
        sid='CodeBuildReports',
        actions=[
            'codebuild:CreateReportGroup',
            'codebuild:CreateReport',
            'codebuild:UpdateReport',
            'codebuild:BatchPutTestCases',
            'codebuild:BatchPutCodeCoverages',
        ],
        resources=[build_arn(partition, 'codebuild', region, account, f'report-group/{config.name}-*')],
    ))

    source = config.source_config
    if config.uses_s3:
        read_write = []
        if config.artifacts_config.type == 'S3':
            read_write += _bucket_resources(partition, bucket_of(config.artifacts_config.location))
        if config.cache_config.type == 'S3':
            read_write += _bucket_resources(partition, bucket_of(config.cache_config.location))
        if not read_write:
            # S3 source without S3 artifacts or cache; builds write back next to their input
            read_write = _bucket_resources(partition, bucket_of(source.location))
        policy.add(PolicyStatement(sid='S3ReadWrite', actions=S3_READ_WRITE_ACTIONS, resources=read_write))

    if source.type == 'S3':
        policy.add(PolicyStatement(
            sid='S3SourceRead',
            actions=['s3:GetObject', 's3:GetObjectVersion', 's3:GetBucketAcl', 's3:GetBucketLocation'],
            resources=_bucket_resources(partition, bucket_of(source.location)),
        ))

    if config.logs_config.s3_enabled:
        policy.add(PolicyStatement(
            sid='S3Logs',
            actions=['s3:PutObject', 's3:GetBucketAcl', 's3:GetBucketLocation'],
            resources=_bucket_resources(partition, bucket_of(config.logs_config.s3_location)),
        ))

    if source.type == 'CODECOMMIT':
        repository = source.codecommit_repository
        resource = build_arn(partition, 'codecommit', region, account, repository) if repository else '*'
        policy.add(PolicyStatement(sid='CodeCommitPull', actions=['codecommit:GitPull'], resources=[resource]))

    ecr_image = config.environment.ecr_image
    if ecr_image is not None or config.ecr_push_repository_arns:
        policy.add(PolicyStatement(sid='EcrAuth', actions=['ecr:GetAuthorizationToken']))
    if ecr_image is not None:
        repository_arn = build_arn(
            partition, 'ecr', ecr_image.group('region'), ecr_image.group('account'),
            f'repository/{ecr_image.group("repository")}',
        )
        policy.add(PolicyStatement(sid='EcrPull', actions=ECR_PULL_ACTIONS, resources=[repository_arn]))
    if config.ecr_push_repository_arns:
        policy.add(PolicyStatement(sid='EcrPush', actions=ECR_PUSH_ACTIONS, resources=config.ecr_push_repository_arns))

    if source.connection_arn is not None:
        policy.add(PolicyStatement(
            sid='CodeStarConnection',
            actions=['codestar-connections:UseConnection', 'codeconnections:UseConnection'],
            resources=[source.connection_arn],
        ))

    if config.vpc_config is not None:
        policy.add(PolicyStatement(sid='VpcAccess', actions=VPC_ACTIONS))
        policy.add(PolicyStatement(
            sid='VpcNetworkInterfacePermission',
            actions=['ec2:CreateNetworkInterfacePermission'],
            resources=[build_arn(partition, 'ec2', region, account, 'network-interface/*')],
            conditions={
                'StringEquals': {'ec2:AuthorizedService': 'codebuild.amazonaws.com'},
                'ArnEquals': {
                    'ec2:Subnet': [
                        subnet if is_reference(subnet) else build_arn(partition, 'ec2', region, account, f'subnet/{subnet}')
                        for subnet in config.vpc_config.subnets
                    ],
                },
            },
        ))

    variables = config.environment.variables
    parameters = [variable.value for variable in variables if variable.type == 'PARAMETER_STORE']
    if parameters:
        policy.add(PolicyStatement(
            sid='SsmParameters',
            actions=['ssm:GetParameters'],
            resources=[ssm_parameter_arn(partition, region, account, name) for name in parameters],
        ))
    secrets = [variable.value for variable in variables if variable.type == 'SECRETS_MANAGER']
    if secrets:
        policy.add(PolicyStatement(
            sid='SecretsManager',
            actions=['secretsmanager:GetSecretValue'],
            resources=[_secret_arn(value, context) for value in secrets],
        ))

    if config.encryption_key_arn is not None:
        policy.add(PolicyStatement(
            sid='Kms',
            actions=['kms:Decrypt', 'kms:Encrypt', 'kms:ReEncrypt*', 'kms:GenerateDataKey*', 'kms:DescribeKey'],
            resources=[config.encryption_key_arn],
        ))
    return policy


def log_group_name(config: CodeBuildProjectConfig) -> str:
    return config.logs_config.group_name or f'/aws/codebuild/{config.name}'


def render_codebuild_project(config: CodeBuildProjectConfig, context: AwsContext) -> RenderedModule:
    """
    Render a CodeBuild project and, when needed, its service role.

    Args:
        config: Validated project configuration
        context: Target account and region

    Returns:
        Rendered module
    """
    tags = config.merged_tags(context)
    resources: list[ResourceDeclaration] = []

    role_arn = config.service_role_arn
    if role_arn is None:
        role_resources = role_declarations(
            role_name=f'{config.name}-codebuild'[:64],
            services=['codebuild.amazonaws.com'],
            policy=service_role_policy(config, context),
            tags=tags,
        )
        resources += role_resources
        role_arn = role_resources[0].ref('arn')

    source = config.source_config
    artifacts = config.artifacts_config
    cache = config.cache_config
    environment = config.environment
    logs = config.logs_config

    arguments = {
        'name': config.name,
        'description': config.description,
        'service_role': role_arn,
        'build_timeout': config.build_timeout,
        'queued_timeout': config.queued_timeout,
        'encryption_key': config.encryption_key_arn,
        'badge_enabled': config.badge_enabled,
        'source': {
            'type': source.type,
            'location': source.location,
            'buildspec': source.buildspec,
            'git_clone_depth': source.git_clone_depth,
            'report_build_status': source.report_build_status if source.report_build_status else None,
        },
        'artifacts': {
            'type': artifacts.type,
            'location': artifacts.location,
            'path': artifacts.path,
            'name': artifacts.name,
            'packaging': artifacts.packaging if artifacts.type == 'S3' else None,
            'encryption_disabled': artifacts.encryption_disabled if artifacts.type == 'S3' else None,
        },
        'cache': {
            'type': cache.type,
            'location': cache.location,
            'modes': cache.modes or None,
        },
        'environment': {
            'compute_type': environment.compute_type,
            'image': environment.image,
            'type': environment.type,
            'privileged_mode': environment.privileged_mode,
            'image_pull_credentials_type': environment.image_pull_credentials_type,
            'environment_variable': [variable.model_dump() for variable in environment.variables],
        },
        'logs_config': {
            'cloudwatch_logs': {
                'status': 'ENABLED' if logs.cloudwatch_enabled else 'DISABLED',
                'group_name': log_group_name(config) if logs.cloudwatch_enabled else None,
                'stream_name': logs.stream_name,
            },
            's3_logs': {
                'status': 'ENABLED' if logs.s3_enabled else 'DISABLED',
                'location': logs.s3_location,
            },
        },
        'vpc_config': config.vpc_config.model_dump() if config.vpc_config else None,
        'tags': tags,
    }
    if source.connection_arn is not None:
        arguments['source']['auth'] = {'type': 'CODECONNECTIONS', 'resource': source.connection_arn}

    project = ResourceDeclaration(type='aws_codebuild_project', name='this', arguments=compact(arguments))
    resources.append(project)

    outputs = {
        'project_name': project.ref('name'),
        'project_arn': project.ref('arn'),
        'role_arn': role_arn,
        'badge_url': project.ref('badge_url') if config.badge_enabled else None,
    }
    logger.debug('Rendered CodeBuild project', extra={
        'project': config.name,
        'source_type': source.type,
        'creates_role': config.service_role_arn is None,
    })
    return RenderedModule(module=MODULE_NAME, name=config.name, resources=resources, outputs=outputs)
