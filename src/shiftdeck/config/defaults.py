"""Default configuration values for ShiftDeck."""

# Deployer-wide defaults
DEPLOYER_DEFAULTS: dict[str, str | int | float] = {
    "default_image_tag": "latest",
    "default_s2i_image": "fabric8/s2i-java:latest-java11",
    "default_dockerfile": "Dockerfile.artifactory",
    "default_routing_subdomain": "router.default.svc.cluster.local",
    "container_command": "/usr/local/s2i/run",
    "scale_down_timeout": 30.0,  # seconds
    "undeploy_delay": 1.0,  # seconds
    "default_port": 8080,
}

# Strategy defaults
DEFAULT_GIT_REF = "master"
DEFAULT_GIT_DOCKERFILE_PATH = "Dockerfile"
DEFAULT_ARTIFACT_DOCKERFILE_PATH = "src/main/docker/Dockerfile"

# Application ids are used as object names; the platform limits their length
MAX_APP_ID_LENGTH = 24

DEFAULT_SETTINGS_FILE = "shiftdeck.yaml"

# Server-side timeout of one build watch request; the watch resumes from the
# last seen resource version until it is stopped
WATCH_TIMEOUT_SECONDS = 60
