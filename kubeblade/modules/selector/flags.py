"""Matcher flag names understood by the selector and the command builders."""

# Selection flags
EVICT_COUNT = "evict-count"
EVICT_PERCENT = "evict-percent"
EVICT_GROUP = "evict-group"
RANDOM_MODE = "random-mode"
NAMES = "names"
LABELS = "labels"
NAMESPACE = "namespace"
CONTAINER_IDS = "container-ids"
CONTAINER_NAMES = "container-names"
CONTAINER_INDEX = "container-index"

# Tool environment flags
CHAOSBLADE_PATH = "chaosblade-path"
CHAOSBLADE_OVERRIDE = "chaosblade-override"
CHAOSBLADE_DEPLOY_MODE = "chaosblade-deploy-mode"
CHAOSBLADE_DOWNLOAD_URL = "chaosblade-download-url"

SELECTION_FLAGS = frozenset({
    EVICT_COUNT,
    EVICT_PERCENT,
    EVICT_GROUP,
    RANDOM_MODE,
    NAMES,
    LABELS,
    NAMESPACE,
    CONTAINER_IDS,
    CONTAINER_NAMES,
    CONTAINER_INDEX,
})

ENVIRONMENT_FLAGS = frozenset({
    CHAOSBLADE_PATH,
    CHAOSBLADE_OVERRIDE,
    CHAOSBLADE_DEPLOY_MODE,
    CHAOSBLADE_DOWNLOAD_URL,
})

# Never forwarded to the tool agent
EXCLUDED_FROM_COMMAND = SELECTION_FLAGS | ENVIRONMENT_FLAGS

# At least one of these must be set for a selection to be bounded
QUERY_FLAGS = (NAMES, LABELS, EVICT_COUNT, EVICT_PERCENT)


def split_values(value: str) -> list:
    """Split a comma-joined flag value, dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
