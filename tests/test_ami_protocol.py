"""
test_ami_protocol.py — Framing and parsing of AMI messages
"""

from ami_bridge.ami_protocol import AmiFramer, AmiMessage, MessageKind, encode_action

LOGIN_RESPONSE = b"Response: Success\r\nActionID: 1\r\nMessage: Authentication accepted\r\n\r\n"
NEWCHANNEL_EVENT = (
    b"Event: Newchannel\r\nPrivilege: call,all\r\nChannel: PJSIP/1000-00000001\r\n"
    b"CallerIDNum: 1000\r\nContext: from-internal\r\nExten: 5551234\r\n\r\n"
)
ENDPOINT_LIST = (
    b"Event: EndpointList\r\nActionID: 7\r\nObjectType: endpoint\r\nObjectName: 1000/1000\r\n"
    b"DeviceState: Not in use\r\nContacts: 1000/sip:1000@10.0.0.5:5060,\r\n\r\n"
)
STREAM = b"Asterisk Call Manager/5.0.1\r\n" + LOGIN_RESPONSE + NEWCHANNEL_EVENT + ENDPOINT_LIST


class TestEncodeAction:

    def test_encodes_fields_in_order_with_terminator(self):
        data = encode_action({"Action": "Originate", "Channel": "PJSIP/1000", "ActionID": "3"})
        assert data == b"Action: Originate\r\nChannel: PJSIP/1000\r\nActionID: 3\r\n\r\n"

    def test_non_string_values_are_stringified(self):
        assert encode_action({"Action": "Originate", "Priority": 1}) == b"Action: Originate\r\nPriority: 1\r\n\r\n"

    def test_round_trip_reproduces_fields(self):
        fields = {
            "Action": "Originate",
            "Channel": "PJSIP/1000",
            "Exten": "5551234",
            "CallerID": "CRM Call <5551234>",
            "Variable": "A=1,B=2",
            "ActionID": "42",
        }
        messages = AmiFramer().feed(encode_action(fields))
        assert len(messages) == 1
        assert messages[0].to_dict() == fields


class TestAmiFramer:

    def test_decodes_every_complete_block(self):
        messages = AmiFramer().feed(STREAM)
        assert [m.kind for m in messages] == [MessageKind.RESPONSE, MessageKind.EVENT, MessageKind.EVENT]
        assert messages[0].fields == {"Response": "Success", "ActionID": "1", "Message": "Authentication accepted"}
        assert messages[1]["Channel"] == "PJSIP/1000-00000001"

    def test_chunk_size_does_not_change_result(self):
        expected = AmiFramer().feed(STREAM)
        for size in range(1, len(STREAM) + 1):
            framer = AmiFramer()
            decoded = []
            for start in range(0, len(STREAM), size):
                decoded.extend(framer.feed(STREAM[start:start + size]))
            assert decoded == expected, f"chunk size {size}"
            assert framer.buffered == 0

    def test_partial_block_stays_buffered(self):
        framer = AmiFramer()
        assert framer.feed(b"Event: Hangup\r\nChannel: PJSIP/1000\r\n") == []
        assert framer.buffered > 0
        messages = framer.feed(b"Cause: 16\r\n\r\nEvent: Hang")
        assert messages == [AmiMessage({"Event": "Hangup", "Channel": "PJSIP/1000", "Cause": "16"})]
        assert framer.buffered == len(b"Event: Hang")

    def test_splits_on_first_colon_only_and_trims(self):
        [message] = AmiFramer().feed(b"Response:   Error \r\nActionID: 2\r\nMessage: Originate failed: no route\r\n\r\n")
        assert message["Response"] == "Error"
        assert message["Message"] == "Originate failed: no route"

    def test_line_without_colon_is_ignored(self):
        [message] = AmiFramer().feed(b"Event: Test\r\ngarbage line\r\nKey: Value\r\n\r\n")
        assert message.fields == {"Event": "Test", "Key": "Value"}

    def test_empty_block_yields_empty_message(self):
        messages = AmiFramer().feed(b"Event: A\r\n\r\n\r\n\r\nEvent: B\r\n\r\n")
        assert [m.fields for m in messages] == [{"Event": "A"}, {}, {"Event": "B"}]
        assert messages[1].kind is MessageKind.UNCLASSIFIED

    def test_utf8_split_across_chunks(self):
        data = "Event: PeerStatus\r\nCallerIDName: José\r\n\r\n".encode("utf-8")
        split_at = data.index("é".encode("utf-8")) + 1
        framer = AmiFramer()
        assert framer.feed(data[:split_at]) == []
        [message] = framer.feed(data[split_at:])
        assert message["CallerIDName"] == "José"

    def test_reset_discards_buffer(self):
        framer = AmiFramer()
        framer.feed(b"Event: Half")
        framer.reset()
        assert framer.feed(b"Event: Whole\r\n\r\n") == [AmiMessage({"Event": "Whole"})]


class TestClassification:

    def test_response_requires_action_id(self):
        assert AmiMessage({"Response": "Success", "ActionID": "1"}).kind is MessageKind.RESPONSE
        assert AmiMessage({"Response": "Goodbye"}).kind is MessageKind.UNCLASSIFIED

    def test_event_wins_over_response_fields(self):
        message = AmiMessage({"Event": "OriginateResponse", "Response": "Success", "ActionID": "5"})
        assert message.kind is MessageKind.EVENT
        assert message.event_name == "OriginateResponse"
        assert message.action_id == "5"

    def test_banner_only_block_is_unclassified(self):
        assert AmiMessage({}).kind is MessageKind.UNCLASSIFIED
