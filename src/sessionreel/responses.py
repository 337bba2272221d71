"""Response filtering and storage URL mapping for raw answer records."""

import logging
from dataclasses import dataclass

from .errors import ValidationError

logger = logging.getLogger(__name__)


class _NoMatchingResponses:
    """Sentinel for an empty filter result. Falsy; compare with `is`."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "NO_MATCHING_RESPONSES"


NO_MATCHING_RESPONSES = _NoMatchingResponses()


@dataclass(frozen=True)
class FilterOptions:
    attribute_name: str
    attribute_value: str


@dataclass(frozen=True)
class UrlOptions:
    filename: str
    storage_path: str
    url_attribute_name: str


def filter_responses(responses: list[dict], attribute_name: str,
                     attribute_value) -> list[dict]:
    """Keep responses whose attribute_name equals attribute_value, in order."""
    return [r for r in responses if r.get(attribute_name) == attribute_value]


def map_responses_with_url(
    responses: list[dict],
    filename_attribute: str,
    storage_path: str,
    url_attribute_name: str,
) -> list[dict]:
    """Return copies of responses with url_attribute_name = storage_path + filename.

    Raises:
        ValidationError: A response has no filename under filename_attribute.
    """
    mapped = []
    for i, response in enumerate(responses):
        filename = response.get(filename_attribute)
        if not isinstance(filename, str) or not filename:
            raise ValidationError(
                f"Response {i}: missing required field '{filename_attribute}'"
            )
        mapped.append({**response, url_attribute_name: storage_path + filename})
    return mapped


def get_filtered_response(
    responses: list[dict],
    filter_options: FilterOptions,
    include_url: bool = False,
    url_options: UrlOptions | None = None,
):
    """Filter responses, then optionally attach storage URLs.

    Returns:
        The filtered (and mapped) list, or NO_MATCHING_RESPONSES when
        nothing matched. The mapper is not invoked in that case.
    """
    filtered = filter_responses(
        responses, filter_options.attribute_name, filter_options.attribute_value,
    )
    if not filtered:
        logger.warning("No %s responses found", filter_options.attribute_value)
        return NO_MATCHING_RESPONSES
    logger.info("Filtered responses: %d", len(filtered))

    if not include_url:
        return filtered

    if url_options is None:
        raise ValueError("url_options is required when include_url is True")
    return map_responses_with_url(
        filtered,
        url_options.filename,
        url_options.storage_path,
        url_options.url_attribute_name,
    )
