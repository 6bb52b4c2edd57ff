from epg_bridge.services.fetch_types import EpgProgramme, RawChannel
from epg_bridge.services.xmltv_scanner import ElementScanner, parse_attributes, scan_xmltv
from tests.helpers import XMLTV_A


def test_scan_extracts_channels_and_programmes():
    result = scan_xmltv(XMLTV_A)

    assert result.channels == [
        RawChannel(id="Telefe.ar", display_name="Telefe"),
        RawChannel(id="TN (Todo Noticias).ar", display_name="TN"),
        RawChannel(id="ESPN.Premium.ar", display_name="ESPN Premium"),
    ]
    assert result.programmes[0] == EpgProgramme(
        start="20260214180000 +0000",
        stop="20260214190000 +0000",
        channel_id="Telefe.ar",
        title="Noticiero",
        description="Las noticias del día",
    )
    assert result.skipped_elements == 0


def test_attribute_order_does_not_matter_and_missing_desc_is_empty():
    result = scan_xmltv(XMLTV_A)
    programme = result.programmes[1]

    assert programme.channel_id == "TN (Todo Noticias).ar"
    assert programme.start == "20260214190000 -0300"
    assert programme.stop == "20260214200000 -0300"
    assert programme.title == "TN Central"
    assert programme.description == ""


def test_raw_blocks_are_kept_verbatim():
    text = '<tv><channel id="a"><display-name>A</display-name></channel>' \
           '<programme start="1" stop="2" channel="a"><title>T</title></programme></tv>'
    result = scan_xmltv(text)

    assert result.channel_blocks == ['<channel id="a"><display-name>A</display-name></channel>']
    assert result.programme_blocks == [
        '<programme start="1" stop="2" channel="a"><title>T</title></programme>'
    ]


def test_entities_and_cdata_are_decoded():
    text = (
        '<channel id="A&amp;E.us"><display-name>A &amp; E</display-name></channel>'
        '<programme start="1" stop="2" channel="A&amp;E.us">'
        '<title><![CDATA[Tom & Jerry]]></title><desc>Caf&#233;</desc></programme>'
    )
    result = scan_xmltv(text)

    assert result.channels == [RawChannel(id="A&E.us", display_name="A & E")]
    assert result.programmes[0].channel_id == "A&E.us"
    assert result.programmes[0].title == "Tom & Jerry"
    assert result.programmes[0].description == "Café"


def test_unclosed_element_is_skipped_and_next_one_kept():
    text = (
        '<channel id="broken"><display-name>Broken</display-name>\n'
        '<channel id="ok"><display-name>OK</display-name></channel>'
    )
    result = scan_xmltv(text)

    assert result.channels == [RawChannel(id="ok", display_name="OK")]
    assert result.skipped_elements == 1


def test_truncated_document_keeps_complete_elements():
    text = (
        '<tv><programme start="1" stop="2" channel="a"><title>Full</title></programme>'
        '<programme start="3" stop="4" channel="a"><title>Cut off'
    )
    result = scan_xmltv(text)

    assert [programme.title for programme in result.programmes] == ["Full"]
    assert result.skipped_elements == 1


def test_unterminated_opening_tag_stops_scan():
    text = '<channel id="a"><display-name>A</display-name></channel><programme start="1'
    result = scan_xmltv(text)

    assert len(result.channels) == 1
    assert result.programmes == []
    assert result.skipped_elements == 1


def test_missing_sub_elements_and_attributes_yield_empty_strings():
    text = '<channel id="x"/><programme channel="x"></programme><channel><display-name>No id</display-name></channel>'
    result = scan_xmltv(text)

    assert result.channels == [
        RawChannel(id="x", display_name=""),
        RawChannel(id="", display_name="No id"),
    ]
    assert result.programmes == [
        EpgProgramme(start="", stop="", channel_id="x", title="", description="")
    ]


def test_similarly_named_tags_are_ignored():
    text = '<channels><channel-group id="g"></channel-group><programmes/></channels>'
    result = scan_xmltv(text)

    assert result.channels == []
    assert result.programmes == []


def test_quoted_angle_bracket_does_not_end_tag():
    text = '<programme start="1" stop="2" channel="a>b"><title>X</title></programme>'
    result = scan_xmltv(text)

    assert result.programmes[0].channel_id == "a>b"
    assert result.programmes[0].title == "X"


def test_malformed_inner_markup_is_tolerated():
    text = '<programme start="1" stop="2" channel="a"><title>Good</title><desc>Bad <b>markup</desc></programme>'
    result = scan_xmltv(text)

    assert result.programmes[0].title == "Good"


def test_first_sub_element_wins():
    text = (
        '<channel id="a"><display-name lang="es">Primero</display-name>'
        '<display-name lang="en">First</display-name></channel>'
    )
    assert scan_xmltv(text).channels[0].display_name == "Primero"


def test_parse_attributes_variants():
    opening = "<programme start='20260101000000 +0000' stop=20260101010000 channel = \"a\" start=\"dup\">"
    attributes = parse_attributes(opening, "programme")

    assert attributes == {
        "start": "20260101000000 +0000",
        "stop": "20260101010000",
        "channel": "a",
    }


def test_element_scanner_yields_in_document_order():
    text = '<programme channel="p1"></programme><channel id="c1"></channel><programme channel="p2"/>'
    elements = list(ElementScanner(text))

    assert [(element.tag, element.attributes) for element in elements] == [
        ("programme", {"channel": "p1"}),
        ("channel", {"id": "c1"}),
        ("programme", {"channel": "p2"}),
    ]


def test_stray_ampersands_and_html_entities_are_kept():
    text = (
        '<programme start="1" stop="2" channel="a">'
        '<title>Tom & Jerry &nbsp;x</title><desc>1 < 2 &aacute; &bogus; <![CDATA[R&B]]></desc>'
        '</programme>'
    )
    programme = scan_xmltv(text).programmes[0]

    assert programme.title == "Tom & Jerry \xa0x"
    assert programme.description == "1 < 2 á &bogus; R&B"
    # Passthrough blocks are not rewritten
    assert "Tom & Jerry" in scan_xmltv(text).programme_blocks[0]
