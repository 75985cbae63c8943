"""
XML calendar export parser

API:
    parseXmlEvents(path)        # -> (events, skipped)
    elementToEvent(element)     # One <event/> element -> EventData
    parseTimestamp(text)        # 'YYYY-MM-DD HH:MM' -> DateTime
    yesNo(text)                 # 'Yes' -> True, anything else -> False

Input layout:
    <root>
        <event ver="1" uuid="..." start="2024-02-13 09:00" end="2024-02-13 09:30"
               remind="15" done="No" urgent="No" important="Yes"
               title="Standup" address="" info=""/>
    </root>

Every parsed event carries source XML. Malformed elements are logged and
counted as skipped; the rest of the file still imports.
"""


# Imports
import xml.etree.ElementTree as ElementTree
from pathlib import Path
from typing import List, Tuple, Union

# Local imports
from eventshub.core.events import DateTime, EventData, Source
from sdk.logging import getLogger


def yesNo(text: str) -> bool:
    return text == "Yes"


def parseTimestamp(text: str) -> DateTime:
    """'YYYY-MM-DD HH:MM' to DateTime; raises ValueError on anything else"""
    try:
        datePart, timePart = text.strip().split(" ")
        year, month, day = (int(x) for x in datePart.split("-"))
        hour, minute = (int(x) for x in timePart.split(":"))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Bad timestamp {text!r}, expected 'YYYY-MM-DD HH:MM'") from e
    return DateTime(year=year, month=month, day=day, hour=hour, minute=minute)


def elementToEvent(element: ElementTree.Element) -> EventData:
    """Convert one <event/> element; raises ValueError when a field is unusable"""
    attrs = element.attrib

    uuid = attrs.get("uuid", "").strip()
    if not uuid:
        raise ValueError("Event without uuid")

    remind = attrs.get("remind", "0").strip() or "0"
    try:
        reminder = int(remind)
    except ValueError as e:
        raise ValueError(f"Bad remind value {remind!r}") from e

    return EventData(
        uuid=uuid,
        version=attrs.get("ver", ""),
        title=attrs.get("title", ""),
        start=parseTimestamp(attrs.get("start", "")),
        end=parseTimestamp(attrs.get("end", "")),
        address=attrs.get("address", ""),
        info=attrs.get("info", ""),
        reminder=reminder,
        done=yesNo(attrs.get("done", "")),
        important=yesNo(attrs.get("important", "")),
        urgent=yesNo(attrs.get("urgent", "")),
        source=Source.XML.value
    )


def parseXmlEvents(path: Union[str, Path]) -> Tuple[List[EventData], int]:
    """
    Parse every <event/> under the document root.

    Returns (events, skippedCount). An unreadable or non-XML file raises
    OSError / ElementTree.ParseError.
    """
    log = getLogger()
    tree = ElementTree.parse(str(path))

    events = []
    skipped = 0
    for index, element in enumerate(tree.getroot().iter("event")):
        try:
            events.append(elementToEvent(element))
        except ValueError as e:
            skipped += 1
            log.warning(f"Skipping malformed event: {e}", file=str(path), position=index)

    log.info("Parsed XML events", file=str(path), parsed=len(events), skipped=skipped)
    return events, skipped
