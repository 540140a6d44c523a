"""
RSS 2.0 document parsing.

Parses raw XML into a typed intermediate form, then validates the
channel metadata strictly and the items leniently: a malformed channel
fails the whole document, a malformed item is skipped with a warning.
"""

import logging
from dataclasses import dataclass
from xml.etree import ElementTree

from gator.errors import ParseError, SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Text:
    """A scalar element; ``value`` is its trimmed text content."""

    value: str


@dataclass(frozen=True)
class Tree:
    """An element holding child elements rather than text."""

    tag: str


@dataclass(frozen=True)
class Many:
    """A field that appears more than once where one value was expected."""

    count: int


RawValue = Text | Tree | Many | None


@dataclass(frozen=True)
class RawItem:
    """Undecided item fields as found in the document."""

    title: RawValue = None
    link: RawValue = None
    description: RawValue = None
    pub_date: RawValue = None


@dataclass(frozen=True)
class RawChannel:
    """Undecided channel fields as found in the document."""

    title: RawValue = None
    link: RawValue = None
    description: RawValue = None
    items: tuple[RawItem | Text, ...] = ()


@dataclass(frozen=True)
class RawFeed:
    """
    Typed intermediate for a whole document.

    Attributes
    ----------
    root_tag : str
        Tag of the document element.
    channel : RawChannel | Text | None
        Decoded channel, ``Text`` when the channel element holds no
        child elements, ``None`` when no channel element exists.
    """

    root_tag: str
    channel: RawChannel | Text | None


@dataclass(frozen=True)
class ParsedItem:
    """A validated feed item."""

    title: str
    link: str
    description: str
    published_date: str


@dataclass(frozen=True)
class ParsedFeedDocument:
    """
    A validated feed document.

    Attributes
    ----------
    channel_title : str
        Non-empty channel title.
    channel_link : str
        Non-empty channel link.
    channel_description : str
        Channel description, possibly empty.
    items : tuple[ParsedItem, ...]
        Valid items in document order.
    """

    channel_title: str
    channel_link: str
    channel_description: str
    items: tuple[ParsedItem, ...] = ()


_CHANNEL_FIELDS = {"title": "title", "link": "link", "description": "description"}
_ITEM_FIELDS = {
    "title": "title",
    "link": "link",
    "description": "description",
    "pubDate": "pub_date",
}


def _decode_value(elements: list[ElementTree.Element]) -> RawValue:
    """Tag the elements found for a single field."""
    if not elements:
        return None
    if len(elements) > 1:
        return Many(len(elements))
    element = elements[0]
    if len(element):
        return Tree(element.tag)
    return Text((element.text or "").strip())


def _decode_fields(element: ElementTree.Element, fields: dict[str, str]) -> dict[str, RawValue]:
    found: dict[str, list[ElementTree.Element]] = {tag: [] for tag in fields}
    for child in element:
        if child.tag in found:
            found[child.tag].append(child)
    return {attr: _decode_value(found[tag]) for tag, attr in fields.items()}


def _decode_item(element: ElementTree.Element) -> RawItem | Text:
    if not len(element):
        return Text((element.text or "").strip())
    return RawItem(**_decode_fields(element, _ITEM_FIELDS))


def decode_document(root: ElementTree.Element) -> RawFeed:
    """
    Decode a parsed XML tree into the typed intermediate form.

    Parameters
    ----------
    root : ElementTree.Element
        Document element of the feed.

    Returns
    -------
    RawFeed
        Decoded document, not yet validated.
    """
    channel_element = root.find("channel")
    if channel_element is None:
        return RawFeed(root_tag=root.tag, channel=None)
    if not len(channel_element):
        return RawFeed(root_tag=root.tag, channel=Text((channel_element.text or "").strip()))

    items = tuple(_decode_item(item) for item in channel_element.findall("item"))
    channel = RawChannel(**_decode_fields(channel_element, _CHANNEL_FIELDS), items=items)
    return RawFeed(root_tag=root.tag, channel=channel)


def _is_non_empty_text(value: RawValue) -> bool:
    return isinstance(value, Text) and value.value != ""


def _is_text(value: RawValue) -> bool:
    return isinstance(value, Text)


def _describe(value: RawValue) -> str:
    if value is None:
        return "is missing"
    if isinstance(value, Text):
        return "is empty"
    if isinstance(value, Many):
        return f"appears {value.count} times"
    return "is not a string"


def validate_channel(raw: RawFeed, source: str | None = None) -> RawChannel:
    """
    Check the channel metadata of a decoded document.

    Raises
    ------
    SchemaError
        If the channel is missing or its title, link or description is
        invalid. The error names the offending field.
    """
    channel = raw.channel
    if not isinstance(channel, RawChannel):
        raise SchemaError("channel", "is missing or not an object", source)

    for name in ("title", "link"):
        value = getattr(channel, name)
        if not _is_non_empty_text(value):
            raise SchemaError(f"channel.{name}", _describe(value), source)
    if not _is_text(channel.description):
        raise SchemaError("channel.description", _describe(channel.description), source)

    return channel


def _validate_item(item: RawItem | Text) -> ParsedItem | None:
    if not isinstance(item, RawItem):
        logger.warning("Skipping invalid item in channel (not an object): %r", item.value)
        return None

    if (
        _is_non_empty_text(item.title)
        and _is_non_empty_text(item.link)
        and _is_text(item.description)
        and _is_non_empty_text(item.pub_date)
    ):
        return ParsedItem(
            title=item.title.value,
            link=item.link.value,
            description=item.description.value,
            published_date=item.pub_date.value,
        )

    logger.warning("Skipping item with missing or invalid fields: %s", item)
    return None


def extract_items(channel: RawChannel) -> tuple[ParsedItem, ...]:
    """
    Validate items one by one, dropping the invalid ones.

    Parameters
    ----------
    channel : RawChannel
        A channel that already passed ``validate_channel``.

    Returns
    -------
    tuple[ParsedItem, ...]
        Valid items, in document order.
    """
    items = []
    for raw_item in channel.items:
        item = _validate_item(raw_item)
        if item is not None:
            items.append(item)

    skipped = len(channel.items) - len(items)
    if skipped:
        logger.warning("Skipped %d of %d item(s)", skipped, len(channel.items))

    return tuple(items)


def parse_feed(raw_text: str | bytes, source: str | None = None) -> ParsedFeedDocument:
    """
    Parse and validate an RSS document.

    Parameters
    ----------
    raw_text : str | bytes
        Raw XML. Bytes are decoded per the document's XML declaration.
    source : str | None
        Where the text came from, added to error messages.

    Returns
    -------
    ParsedFeedDocument
        Validated document.

    Raises
    ------
    ParseError
        If the text is not well-formed XML.
    SchemaError
        If the channel metadata is invalid.
    """
    # Some servers prepend blank lines, which breaks the XML declaration
    try:
        root = ElementTree.fromstring(raw_text.lstrip())
    except ElementTree.ParseError as e:
        raise ParseError(e, source) from e

    channel = validate_channel(decode_document(root), source)
    items = extract_items(channel)

    logger.debug(
        "Parsed feed '%s' with %d item(s)", channel.title.value, len(items)
    )

    return ParsedFeedDocument(
        channel_title=channel.title.value,
        channel_link=channel.link.value,
        channel_description=channel.description.value,
        items=items,
    )
