from __future__ import annotations

import pytest

from genaikit.types import (
    Blob,
    Candidate,
    ChatSessionBackUpData,
    Content,
    FinishReason,
    FunctionCall,
    FunctionCallingBehaviour,
    FunctionResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    GenerationConfig,
    HarmBlockThreshold,
    HarmCategory,
    Part,
    SafetySetting,
    Tool,
    extract_code_blocks,
    extract_json_blocks,
    get_default_model,
    to_model_id,
)


def test_to_dict_uses_camel_case_and_skips_none():
    request = GenerateContentRequest(
        contents=[Content.from_text("hi")],
        generation_config=GenerationConfig(max_output_tokens=64, top_p=0.5),
        safety_settings=[
            SafetySetting(
                category=HarmCategory.HARM_CATEGORY_HARASSMENT,
                threshold=HarmBlockThreshold.BLOCK_NONE,
            )
        ],
    )

    assert request.to_dict() == {
        "contents": [{"parts": [{"text": "hi"}], "role": "user"}],
        "safetySettings": [{"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"}],
        "generationConfig": {"maxOutputTokens": 64, "topP": 0.5},
    }


def test_response_from_dict_builds_nested_types():
    response = GenerateContentResponse.from_dict(
        {
            "candidates": [
                {
                    "content": {
                        "role": "model",
                        "parts": [
                            {"text": "Checking. "},
                            {"functionCall": {"name": "get_weather", "args": {"city": "Oslo"}}},
                        ],
                    },
                    "finishReason": "STOP",
                }
            ],
            "usageMetadata": {"promptTokenCount": 3, "totalTokenCount": 9},
            "modelVersion": "gemini-1.5-flash-002",
        }
    )

    candidate = response.candidates[0]
    assert isinstance(candidate, Candidate)
    assert candidate.finish_reason is FinishReason.STOP
    assert response.text == "Checking. "
    assert response.function_call == FunctionCall(name="get_weather", args={"city": "Oslo"})
    assert response.usage_metadata.total_token_count == 9
    assert response.model_version == "gemini-1.5-flash-002"


def test_unknown_enum_value_is_kept_as_string():
    candidate = Candidate.from_dict({"finishReason": "SOMETHING_NEW"})
    assert candidate.finish_reason == "SOMETHING_NEW"


def test_from_dict_accepts_snake_case_keys():
    config = GenerationConfig.from_dict({"response_mime_type": "application/json"})
    assert config.response_mime_type == "application/json"


def test_response_without_candidates_has_no_text():
    response = GenerateContentResponse()
    assert response.text is None
    assert response.function_call is None
    assert response.function_calls == []


def test_text_skips_thought_parts():
    content = Content(parts=[Part(text="thinking", thought=True), Part(text="answer")])
    assert content.text == "answer"


def test_function_response_content_has_function_role():
    content = FunctionResponse(name="f", response={"ok": True}).to_content()
    assert content.role == "function"
    assert content.has_function_response()


def test_blob_from_bytes_is_base64():
    blob = Blob.from_bytes(b"hello", "text/plain")
    assert blob.data == "aGVsbG8="
    assert blob.to_dict() == {"mimeType": "text/plain", "data": "aGVsbG8="}


def test_add_tool_sets_tool_config():
    request = GenerateContentRequest()
    request.add_tool(Tool(function_declarations=[]))
    assert request.tools == [Tool(function_declarations=[])]
    assert request.tool_config is None


def test_empty_builtin_tools_serialize_as_empty_objects():
    from genaikit.types import CodeExecutionTool, GoogleSearchTool

    assert Tool(google_search=GoogleSearchTool()).to_dict() == {"googleSearch": {}}
    assert Tool(code_execution=CodeExecutionTool()).to_dict() == {"codeExecution": {}}


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("gemini-1.5-flash", "models/gemini-1.5-flash"),
        ("models/gemini-1.5-pro", "models/gemini-1.5-pro"),
    ],
)
def test_to_model_id(name, expected):
    assert to_model_id(name) == expected


def test_to_model_id_rejects_foreign_paths():
    with pytest.raises(ValueError):
        to_model_id("tunedModels/my-model")


def test_default_model_from_environment(monkeypatch):
    monkeypatch.setenv("GOOGLE_AI_MODEL", "gemini-2.0-flash")
    assert get_default_model() == "gemini-2.0-flash"
    assert get_default_model("gemini-1.5-pro") == "gemini-1.5-pro"

    monkeypatch.delenv("GOOGLE_AI_MODEL")
    assert get_default_model() == "gemini-1.5-flash"


def test_extract_json_blocks_prefers_fenced_json():
    text = 'Here you go:\n```json\n{"a": 1}\n```\nand\n```python\nprint(1)\n```'
    assert extract_json_blocks(text) == ['{"a": 1}']
    assert [block.language for block in extract_code_blocks(text)] == ["json", "python"]


def test_extract_json_blocks_falls_back_to_bare_document():
    assert extract_json_blocks(' [1, 2, 3] ') == ["[1, 2, 3]"]
    assert extract_json_blocks("no json here") == []


def test_backup_data_round_trips_through_dict():
    backup = ChatSessionBackUpData(
        model="gemini-1.5-flash",
        history=[Content.from_text("hi"), Content.from_text("hello", role="model")],
        system_instruction="Be brief.",
        use_json_mode=True,
        function_calling_behaviour=FunctionCallingBehaviour(auto_reply_function=False),
    )

    data = backup.to_dict()
    assert data["systemInstructions"] == "Be brief."
    assert data["useJsonMode"] is True
    assert data["functionCallingBehaviour"]["autoReplyFunction"] is False

    restored = ChatSessionBackUpData.from_json(backup.to_json())
    assert restored == backup
