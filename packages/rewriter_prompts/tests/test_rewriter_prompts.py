import json

from rewriter_prompts import extract_json_payload, get_system_prompt, render_user_message


def test_get_system_prompt():
    prompt = get_system_prompt()
    assert "Syntax Rewriter" in prompt
    # every kind the reconciler understands is documented
    for kind in ("rewrite", "header", "note", "skip", "question", "ignore"):
        assert kind in prompt
    assert "L{n}" in prompt


def test_get_system_prompt_extra():
    prompt = get_system_prompt("Answer in JSON only.")
    assert prompt.endswith("Answer in JSON only.")
    assert "EXTRA INSTRUCTIONS" in prompt


def test_render_user_message_is_compact_json():
    req = {"meta": {"doc_id": "d", "lines_hash": "h"}, "lines": {"0": "Rent = 5 €"}, "variables": {}}
    msg = render_user_message(req)
    assert json.loads(msg) == req
    assert ", " not in msg
    assert "€" in msg


def test_extract_json_payload_plain_and_fenced():
    body = '{"meta": {}, "results": {}}'
    assert extract_json_payload(body) == body
    assert extract_json_payload(f"Sure! Here it is:\n```json\n{body}\n```") == body
    assert extract_json_payload(f"Result: {body} hope this helps") == body


def test_extract_json_payload_missing():
    assert extract_json_payload("") is None
    assert extract_json_payload("no json here") is None
    assert extract_json_payload("} backwards {") is None
