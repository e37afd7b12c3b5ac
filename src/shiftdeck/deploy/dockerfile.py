"""Bundled Dockerfile templates for source builds.

The templates download the application jar inside the build using the
``app_*`` and ``repo_auth_*`` variables injected into every build run.
"""

from jinja2 import Template

from shiftdeck.config.defaults import DEPLOYER_DEFAULTS

ARTIFACTORY_DOCKERFILE_TEMPLATE = """\
# ShiftDeck application image
# Downloads the jar at ${app_resource_url} from an Artifactory repository

FROM {{ base_image }}

USER root
RUN curl -fsSL ${repo_auth_username:+-u "${repo_auth_username}:${repo_auth_password}"} \\
        -o /opt/app.jar "${app_resource_url}"
{% if environment %}
{% for key, value in environment.items() %}
ENV {{ key }}="{{ value }}"
{% endfor %}
{% endif %}

EXPOSE {{ port }}
USER 1001
ENTRYPOINT ["java", "-jar", "/opt/app.jar"]
"""

NEXUS_DOCKERFILE_TEMPLATE = """\
# ShiftDeck application image
# Downloads the artifact through the Nexus search API

FROM {{ base_image }}

USER root
RUN curl -fsSL ${repo_auth_username:+-u "${repo_auth_username}:${repo_auth_password}"} \\
        -o /opt/app.jar \\
        "https://${app_resource_host}/service/rest/v1/search/assets/download?maven.groupId=${app_groupId}&maven.artifactId=${app_artifactId}&maven.baseVersion=${app_version}&maven.extension=jar"
{% if environment %}
{% for key, value in environment.items() %}
ENV {{ key }}="{{ value }}"
{% endfor %}
{% endif %}

EXPOSE {{ port }}
USER 1001
ENTRYPOINT ["java", "-jar", "/opt/app.jar"]
"""

BUNDLED_DOCKERFILES = {
    "Dockerfile.artifactory": ARTIFACTORY_DOCKERFILE_TEMPLATE,
    "Dockerfile.nexus": NEXUS_DOCKERFILE_TEMPLATE,
}

DEFAULT_BASE_IMAGE = "registry.access.redhat.com/ubi8/openjdk-11:latest"


def is_bundled_dockerfile(name: str) -> bool:
    """Whether ``name`` refers to one of the bundled templates."""
    return name.strip() in BUNDLED_DOCKERFILES


def generate_dockerfile(
    name: str,
    *,
    base_image: str = DEFAULT_BASE_IMAGE,
    port: int = int(DEPLOYER_DEFAULTS["default_port"]),
    environment: dict[str, str] | None = None,
) -> str:
    """Render a bundled Dockerfile template.

    Args:
        name: Template name (``Dockerfile.artifactory`` or ``Dockerfile.nexus``)
        base_image: Java runtime base image
        port: Port exposed by the container
        environment: Extra environment variables baked into the image

    Returns:
        Rendered Dockerfile content

    Raises:
        KeyError: If ``name`` is not a bundled template
    """
    template = Template(BUNDLED_DOCKERFILES[name.strip()])
    return template.render(
        base_image=base_image,
        port=port,
        environment=environment or {},
    )
