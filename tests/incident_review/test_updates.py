"""Tests for inbound update parsing."""

from incident_review.updates import parse_update


class TestParseUpdate:
    """Tests for parse_update."""

    def test_non_dict_payload(self):
        assert parse_update(None) is None
        assert parse_update([1, 2]) is None
        assert parse_update("update") is None

    def test_callback_query(self):
        update = parse_update({
            "update_id": 7,
            "callback_query": {
                "id": "cb-1",
                "data": "approve:abc",
                "from": {"id": 555},
                "message": {"message_id": 10, "chat": {"id": -100}, "text": "Fire"},
            },
        })

        assert update.update_id == 7
        assert update.message is None
        callback = update.callback_query
        assert callback.id == "cb-1"
        assert callback.data == "approve:abc"
        assert callback.from_id == 555
        assert callback.message.message_id == 10
        assert callback.message.text == "Fire"
        assert callback.chat_id == -100

    def test_callback_chat_falls_back_to_sender(self):
        update = parse_update({"callback_query": {"id": "1", "data": "x", "from": {"id": 555}}})
        assert update.callback_query.message is None
        assert update.callback_query.chat_id == 555

    def test_message(self):
        update = parse_update({
            "update_id": 8,
            "message": {"message_id": 3, "chat": {"id": 555}, "from": {"id": 556}, "text": "Strada Noua"},
        })

        assert update.callback_query is None
        assert update.message.chat_id == 555
        assert update.message.from_id == 556
        assert update.message.text == "Strada Noua"

    def test_string_ids_are_parsed(self):
        update = parse_update({"message": {"chat": {"id": "555"}, "text": "hi"}})
        assert update.message.chat_id == 555

    def test_malformed_fields(self):
        update = parse_update({
            "update_id": "seven",
            "callback_query": {"id": 5, "data": 12, "from": "nobody"},
            "message": {"message_id": True, "chat": {"id": "abc"}, "text": None},
        })

        assert update.update_id is None
        assert update.callback_query.id == "5"
        assert update.callback_query.data is None
        assert update.callback_query.from_id is None
        assert update.message.message_id is None
        assert update.message.chat_id is None
        assert update.message.text is None

    def test_empty_envelope(self):
        update = parse_update({})
        assert update.callback_query is None
        assert update.message is None
