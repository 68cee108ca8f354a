"""Quay.io "Repository Push" webhook payloads.

The relay delivers the payload unchanged. Relevant fields:

    {"repository": "org/coverage-artifacts",
     "docker_url": "quay.io/org/coverage-artifacts",
     "updated_tags": ["e2e-20250101-abc"]}

Each updated tag is an independent coverage bundle and starts its own run.
"""


def parse_push_event(payload: dict) -> list[str]:
    """Return the bundle reference for every tag updated by the push.

    Raises:
        ValueError: The payload is not a repository push event.
    """
    if not isinstance(payload, dict):
        raise ValueError("Push event payload must be a JSON object")

    docker_url = (payload.get("docker_url") or "").strip()
    if not docker_url:
        repository = (payload.get("repository") or "").strip()
        if not repository:
            raise ValueError("Push event has neither docker_url nor repository")
        docker_url = f"quay.io/{repository}"

    tags = payload.get("updated_tags")
    if not isinstance(tags, list):
        raise ValueError("Push event has no updated_tags list")

    references: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            continue
        reference = f"{docker_url}:{tag.strip()}"
        if reference not in references:
            references.append(reference)
    return references
