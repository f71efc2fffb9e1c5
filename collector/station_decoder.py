"""
Station Document Decoder
Streams the station's loosely generated markup and extracts one ordered
series per metric.

The feed is "XML" in name only: closing tags go missing, ampersands are not
always escaped, and unrelated elements come and go. Parsing is therefore done
with the forgiving `html.parser` tokenizer (the same backend the scrapers use
through BeautifulSoup), fed incrementally so the body never has to be held in
memory as a whole.

Shape of a document (containers are optional, entries may repeat):

    <lastData>
      <temperature_list>
        <air_temperature UM="°C"><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>
      </temperature_list>
      <wind_list>
        <wind10m UM_speed="m/s" UM_windgust="m/s" UM_direction="°">
          <date>...</date><speed_value>1.2</speed_value><windgust>3.4</windgust><direction_value>180</direction_value>
        </wind10m>
      </wind_list>
      ...
    </lastData>
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

from collector.timestamp_parser import parse_station_time
from core.errors import ElementDecodeError
from core.models import STATION_TZ, MetricKind, MetricSeries, Sample, StationSeries
from core.pool import PooledDocument, RawRecord

logger = logging.getLogger("station_decoder")

# element local name -> (kind, unit attribute)
SCALAR_ELEMENTS: Dict[str, Tuple[MetricKind, str]] = {
    "air_temperature": (MetricKind.TEMPERATURE, "um"),
    "relative_humidity": (MetricKind.HUMIDITY, "um"),
    "precipitation": (MetricKind.PRECIPITATION, "um"),
    "global_radiation": (MetricKind.RADIATION, "um"),
}

WIND_ELEMENT = "wind10m"
# wind child -> (kind, unit attribute)
WIND_CHILDREN: Dict[str, Tuple[MetricKind, str]] = {
    "speed_value": (MetricKind.WIND_SPEED, "um_speed"),
    "windgust": (MetricKind.WIND_GUST, "um_windgust"),
    "direction_value": (MetricKind.WIND_DIRECTION, "um_direction"),
}

METRIC_ELEMENTS = frozenset(SCALAR_ELEMENTS) | {WIND_ELEMENT}

SCALAR_CHILDREN = frozenset({"date", "value"})
WIND_CHILD_NAMES = frozenset({"date"}) | frozenset(WIND_CHILDREN)


def _local_name(tag: str) -> str:
    return tag.rsplit(":", 1)[-1].lower()


@dataclass
class _OpenElement:
    name: str
    attrs: Dict[str, str]
    children: Dict[str, str] = field(default_factory=dict)
    child: Optional[str] = None
    text: List[str] = field(default_factory=list)
    # unrecognised tags opened inside this element and not yet closed
    nested: List[str] = field(default_factory=list)

    def close_child(self) -> None:
        if self.child is not None:
            # last occurrence wins for a repeated child
            self.children[self.child] = "".join(self.text).strip()
        self.child = None
        self.text = []

    @property
    def expected_children(self) -> frozenset:
        return WIND_CHILD_NAMES if self.name == WIND_ELEMENT else SCALAR_CHILDREN

    @property
    def kind(self) -> MetricKind:
        if self.name == WIND_ELEMENT:
            return MetricKind.WIND_SPEED
        return SCALAR_ELEMENTS[self.name][0]


class StationDocumentDecoder(HTMLParser):
    """
    Incremental decoder writing into a pooled document.

    Usage:
        decoder = StationDocumentDecoder(document)
        for chunk in chunks:
            decoder.feed_bytes(chunk)
        decoder.close()   # raises the first ElementDecodeError, if any

    A bad element does not stop tokenizing; the rest of the stream is still
    consumed and the failure is raised from `close()`.
    """

    def __init__(self, document: PooledDocument, local_tz: tzinfo = STATION_TZ):
        super().__init__(convert_charrefs=True)
        self.document = document
        self.local_tz = local_tz
        self.errors: List[ElementDecodeError] = []
        self.elements_seen = 0
        self._open: Optional[_OpenElement] = None
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    # --- input ---

    def feed_bytes(self, data: bytes) -> None:
        text = self._text_decoder.decode(data)
        if text:
            self.feed(text)

    def close(self) -> None:
        tail = self._text_decoder.decode(b"", final=True)
        if tail:
            self.feed(tail)
        super().close()
        self._finish_element()
        if self.errors:
            raise self.errors[0]

    # --- tokenizer callbacks ---

    def handle_starttag(self, tag, attrs):
        name = _local_name(tag)
        if name in METRIC_ELEMENTS:
            # a new entry implicitly closes an unterminated one
            self._finish_element()
            self._open = _OpenElement(
                name=name,
                attrs={_local_name(k): (v or "") for k, v in attrs},
            )
            return
        if self._open is None:
            return
        self._open.close_child()
        if name in self._open.expected_children:
            self._open.child = name
        else:
            self._open.nested.append(name)

    def handle_endtag(self, tag):
        element = self._open
        if element is None:
            return
        name = _local_name(tag)
        if name == element.name:
            self._finish_element()
        elif name == element.child:
            element.close_child()
        elif name in element.nested:
            # also drops unknown tags left open inside it
            while element.nested.pop() != name:
                pass
        elif name not in element.expected_children:
            # end of an enclosing container: the entry was never closed
            self._finish_element()

    def parse_marked_section(self, i, report=1):
        # Older tokenizers fail on unknown <![keyword[ sections; skip them instead.
        try:
            return super().parse_marked_section(i, report)
        except (AssertionError, NotImplementedError):
            j = self.rawdata.find("]]>", i + 3)
            if j < 0:
                return -1
            logger.debug(f"Skipped marked section {self.rawdata[i:j + 3][:40]!r}")
            return j + 3

    def handle_data(self, data):
        if self._open is not None and self._open.child is not None:
            self._open.text.append(data)

    # --- element decoding ---

    def _finish_element(self) -> None:
        element = self._open
        if element is None:
            return
        self._open = None
        element.close_child()
        self.elements_seen += 1
        try:
            for kind, record in self._decode_element(element):
                self.document.append(kind, record)
        except ValueError as e:
            self.errors.append(ElementDecodeError(element.kind, e))
            logger.debug(f"Dropped {element.name} element: {e}")

    def _decode_element(self, element: _OpenElement) -> List[Tuple[MetricKind, RawRecord]]:
        """Decode all records of one element, or raise without emitting any."""
        if "date" not in element.children:
            raise ValueError("missing date")
        timestamp = parse_station_time(element.children["date"], self.local_tz)

        if element.name == WIND_ELEMENT:
            children = WIND_CHILDREN
        else:
            children = {"value": SCALAR_ELEMENTS[element.name]}

        records = []
        for child, (kind, unit_attr) in children.items():
            if child not in element.children:
                raise ValueError(f"missing {child}")
            value = _parse_float(child, element.children[child])
            records.append((kind, RawRecord(timestamp, value, element.attrs.get(unit_attr, ""))))
        return records


def _parse_float(child: str, text: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"invalid {child} {text!r}") from None


def build_station_series(document: PooledDocument, station: str = "") -> StationSeries:
    """Copy a pooled document into immutable series (the document is reused afterwards)."""
    return StationSeries(
        station=station or document.station,
        series_by_kind={
            kind: MetricSeries(kind, tuple(Sample(r.timestamp, r.value, r.unit) for r in records))
            for kind, records in document.records.items()
        },
    )


def decode_document(data: bytes, station: str = "", local_tz: tzinfo = STATION_TZ) -> StationSeries:
    """Decode a complete, already buffered document."""
    document = PooledDocument()
    decoder = StationDocumentDecoder(document, local_tz)
    decoder.feed_bytes(data)
    decoder.close()
    return build_station_series(document, station)
