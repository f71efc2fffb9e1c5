from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from collector.station_decoder import StationDocumentDecoder, decode_document
from core.errors import ElementDecodeError, UnparseableTimestampError
from core.models import MetricKind
from core.pool import PooledDocument

CET = timezone(timedelta(hours=1))

FULL_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<lastData xmlns="http://www.meteotrentino.it/">
  <stationCode>T0147</stationCode>
  <temperature_list>
    <air_temperature UM="°C"><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>
    <air_temperature UM="°C"><date>2025-11-13T00:15:00+01</date><value>5.0</value></air_temperature>
  </temperature_list>
  <precipitation_list>
    <precipitation UM="mm"><date>2025-11-13T00:00:00+01</date><value>0.2</value></precipitation>
  </precipitation_list>
  <wind_list>
    <wind10m UM_speed="m/s" UM_windgust="m/s" UM_direction="gN">
      <date>2025-11-13T00:00:00+01</date>
      <speed_value>1.5</speed_value>
      <windgust>3.1</windgust>
      <direction_value>225</direction_value>
    </wind10m>
  </wind_list>
  <global_radiation_list>
    <global_radiation UM="W/mq"><date>2025-11-13T00:00:00+01</date><value>0</value></global_radiation>
  </global_radiation_list>
  <relative_humidity_list>
    <relative_humidity UM="%"><date>2025-11-13T00:00:00+01</date><value>80</value></relative_humidity>
  </relative_humidity_list>
</lastData>
""".encode("utf-8")


def _wrap(body: str) -> bytes:
    return f"<lastData>{body}</lastData>".encode("utf-8")


def test_decode_full_document():
    data = decode_document(FULL_DOCUMENT, station="T0147")

    assert data.station == "T0147"
    assert [s.value for s in data.temperature] == [5.2, 5.0]
    assert data.temperature.samples[0].timestamp == datetime(2025, 11, 13, 0, 0, tzinfo=CET)
    assert data.temperature.samples[0].unit == "°C"
    assert [s.value for s in data.humidity] == [80.0]
    assert [s.value for s in data.precipitation] == [0.2]
    assert [s.value for s in data.radiation] == [0.0]
    assert data.sample_count == 8


def test_wind_element_feeds_three_series():
    data = decode_document(FULL_DOCUMENT)

    speed = data.series(MetricKind.WIND_SPEED)
    gust = data.series(MetricKind.WIND_GUST)
    direction = data.series(MetricKind.WIND_DIRECTION)

    assert [s.value for s in speed] == [1.5]
    assert [s.value for s in gust] == [3.1]
    assert [s.value for s in direction] == [225.0]
    assert speed.samples[0].unit == "m/s"
    assert direction.samples[0].unit == "gN"
    assert speed.samples[0].timestamp == direction.samples[0].timestamp


def test_missing_containers_give_empty_series():
    data = decode_document(_wrap(
        "<temperature_list><air_temperature><date>2025-11-13T00:00:00+01</date>"
        "<value>5.2</value></air_temperature></temperature_list>"
    ))

    assert len(data.temperature) == 1
    assert len(data.humidity) == 0
    assert len(data.series(MetricKind.WIND_GUST)) == 0


def test_empty_stream_is_not_an_error():
    data = decode_document(b"")

    assert data.sample_count == 0


def test_unclosed_child_tags_are_closed_by_next_child():
    data = decode_document(_wrap(
        "<air_temperature UM='C'><date>2025-11-13T00:00:00+01<value>5.2</air_temperature>"
    ))

    assert [s.value for s in data.temperature] == [5.2]


def test_unclosed_metric_element_is_closed_by_next_entry_and_end_of_stream():
    data = decode_document(
        b"<lastData><temperature_list>"
        b"<air_temperature><date>2025-11-13T00:00:00+01</date><value>1.0</value>"
        b"<air_temperature><date>2025-11-13T00:15:00+01</date><value>2.0</value>"
    )

    assert [s.value for s in data.temperature] == [1.0, 2.0]


def test_self_closing_children_and_entities():
    data = decode_document(_wrap(
        "<stationName>Trento & Roncafort &amp; co</stationName>"
        "<global_radiation UM=\"W/m&sup2;\"><date>2025-11-13T00:00:00+01</date>"
        "<note/><value>12.5</value></global_radiation>"
        "<comment>rain &unknown; snow & hail</comment>"
    ))

    assert [s.value for s in data.radiation] == [12.5]
    assert data.radiation.samples[0].unit == "W/m²"


def test_unrecognized_elements_are_skipped():
    data = decode_document(_wrap(
        "<snow_list><snow><date>2025-11-13T00:00:00+01</date><value>3</value></snow></snow_list>"
        "<relative_humidity><date>2025-11-13T00:00:00+01</date><value>80</value></relative_humidity>"
    ))

    assert data.sample_count == 1
    assert [s.value for s in data.humidity] == [80.0]


def test_unclosed_entry_does_not_adopt_unrecognized_sibling():
    data = decode_document(
        b"<lastData><temperature_list><air_temperature>"
        b"<date>2025-11-13T00:00:00+01</date><value>5.2</value>"
        b"</temperature_list>"
        b"<snow_list><snow><date>2025-11-14T09:00:00+01</date><value>99</value></snow></snow_list>"
        b"</lastData>"
    )

    assert [s.value for s in data.temperature] == [5.2]
    assert data.temperature.samples[0].timestamp == datetime(2025, 11, 13, 0, 0, tzinfo=CET)
    assert data.sample_count == 1


def test_unknown_tags_inside_an_entry_are_skipped():
    data = decode_document(_wrap(
        "<relative_humidity><date>2025-11-13T00:00:00+01</date><value>80</value>"
        "<quality><flag>1</flag><note>sensor <b>ok</quality></relative_humidity>"
        "<air_temperature><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>"
    ))

    assert [s.value for s in data.humidity] == [80.0]
    assert [s.value for s in data.temperature] == [5.2]


def test_unknown_marked_sections_are_skipped():
    body = _wrap(
        "<![x[ junk ]]>"
        "<air_temperature><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>"
        "<![-[ trailing"
    )

    data = decode_document(body)

    assert [s.value for s in data.temperature] == [5.2]


def test_unknown_marked_section_split_across_chunks():
    body = _wrap(
        "<![x[ junk ]]>"
        "<air_temperature><date>2025-11-13T00:00:00+01</date><value>5.2</value></air_temperature>"
    )
    document = PooledDocument()
    decoder = StationDocumentDecoder(document)
    for i in range(len(body)):
        decoder.feed_bytes(body[i:i + 1])
    decoder.close()

    assert [r.value for r in document.records[MetricKind.TEMPERATURE]] == [5.2]


def test_namespace_prefix_and_case_are_ignored():
    data = decode_document(_wrap(
        "<m:AIR_TEMPERATURE><m:date>2025-11-13T00:00:00+01</m:date><m:value>-1.5</m:value></m:AIR_TEMPERATURE>"
    ))

    assert [s.value for s in data.temperature] == [-1.5]


def test_repeated_timestamps_are_kept_in_document_order():
    data = decode_document(_wrap(
        "<precipitation><date>2025-11-13T00:00:00+01</date><value>0.1</value></precipitation>"
        "<precipitation><date>2025-11-13T00:00:00+01</date><value>0.3</value></precipitation>"
    ))

    assert [s.value for s in data.precipitation] == [0.1, 0.3]


def test_chunked_feed_matches_single_feed():
    document = PooledDocument()
    decoder = StationDocumentDecoder(document)
    # one byte at a time splits tags, entities and the two-byte degree sign
    for i in range(len(FULL_DOCUMENT)):
        decoder.feed_bytes(FULL_DOCUMENT[i:i + 1])
    decoder.close()

    whole = decode_document(FULL_DOCUMENT)
    assert [r.value for r in document.records[MetricKind.TEMPERATURE]] == [s.value for s in whole.temperature]
    assert document.records[MetricKind.TEMPERATURE][0].unit == "°C"
    assert len(document) == whole.sample_count


def test_bad_value_fails_after_consuming_the_rest_of_the_stream():
    document = PooledDocument()
    decoder = StationDocumentDecoder(document)
    decoder.feed_bytes(_wrap(
        "<air_temperature><date>2025-11-13T00:00:00+01</date><value>abc</value></air_temperature>"
        "<relative_humidity><date>2025-11-13T00:00:00+01</date><value>80</value></relative_humidity>"
    ))

    with pytest.raises(ElementDecodeError) as exc_info:
        decoder.close()

    assert exc_info.value.kind is MetricKind.TEMPERATURE
    assert "abc" in str(exc_info.value.cause)
    assert len(document.records[MetricKind.TEMPERATURE]) == 0
    assert len(document.records[MetricKind.HUMIDITY]) == 1
    assert decoder.elements_seen == 2


def test_missing_date_is_an_element_decode_error():
    with pytest.raises(ElementDecodeError) as exc_info:
        decode_document(_wrap("<precipitation UM='mm'><value>0.2</value></precipitation>"))

    assert exc_info.value.kind is MetricKind.PRECIPITATION
    assert "missing date" in str(exc_info.value)


def test_unparseable_date_is_the_cause():
    with pytest.raises(ElementDecodeError) as exc_info:
        decode_document(_wrap(
            "<global_radiation><date>13/11/2025</date><value>1</value></global_radiation>"
        ))

    assert isinstance(exc_info.value.cause, UnparseableTimestampError)
    assert exc_info.value.cause.raw == "13/11/2025"


def test_incomplete_wind_element_emits_nothing():
    document = PooledDocument()
    decoder = StationDocumentDecoder(document)
    decoder.feed_bytes(_wrap(
        "<wind10m><date>2025-11-13T00:00:00+01</date><speed_value>1.0</speed_value>"
        "<direction_value>90</direction_value></wind10m>"
    ))

    with pytest.raises(ElementDecodeError) as exc_info:
        decoder.close()

    assert exc_info.value.kind is MetricKind.WIND_SPEED
    assert "missing windgust" in str(exc_info.value)
    assert len(document) == 0
