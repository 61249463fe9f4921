"""Single-node dispatch and handlers."""

import pytest

from constants import ALL_NODE_TYPES
from services.execution import NodeExecutionResult, NodeStatus, get_node_output
from services.handlers import build_prompt

from conftest import node


def test_registry_covers_every_node_type(node_executor):
    assert node_executor.supported_types == ALL_NODE_TYPES


@pytest.mark.asyncio
async def test_text_node(node_executor):
    result = await node_executor.execute(node("t", "textNode", text="hello"), {})
    assert result.status == NodeStatus.COMPLETED
    assert result.output["text"] == "hello"
    assert result.error is None
    assert result.duration is not None and result.duration >= 0


@pytest.mark.asyncio
async def test_text_node_without_text_still_succeeds(node_executor):
    result = await node_executor.execute(node("t", "textNode"), {})
    assert result.succeeded
    assert result.output["text"] == ""


@pytest.mark.asyncio
async def test_image_upload_requires_image(node_executor):
    result = await node_executor.execute(node("i", "imageUploadNode"), {})
    assert result.status == NodeStatus.FAILED
    assert result.error == "No image uploaded"
    assert result.duration is not None


@pytest.mark.asyncio
async def test_image_upload_emits_reference(node_executor):
    result = await node_executor.execute(
        node("i", "imageUploadNode", imageUrl="data:image/png;base64,AAA", fileName="p.png"), {})
    assert result.succeeded
    assert result.output["image_data"] == "data:image/png;base64,AAA"


@pytest.mark.asyncio
async def test_video_upload_requires_video(node_executor):
    result = await node_executor.execute(node("v", "videoUploadNode"), {})
    assert result.error == "No video uploaded"

    result = await node_executor.execute(node("v", "videoUploadNode", videoUrl="https://x/v.mp4"), {})
    assert result.output["video_data"] == "https://x/v.mp4"


@pytest.mark.asyncio
async def test_crop_without_input_fails(node_executor):
    result = await node_executor.execute(node("c", "cropImageNode", width=50, height=40), {})
    assert result.status == NodeStatus.FAILED
    assert result.error == "No image input connected"


@pytest.mark.asyncio
async def test_crop_descriptor(node_executor):
    result = await node_executor.execute(
        node("c", "cropImageNode", x=10, y=20, width=1080, height=720),
        {"image-in": "data:image/png;base64,AAA"},
    )
    assert result.succeeded
    assert result.output["image_data"] == "[Cropped: 1080x720 at (10,20)]"
    assert result.output["width"] == 1080


@pytest.mark.asyncio
async def test_extract_frame(node_executor):
    failed = await node_executor.execute(node("f", "extractFrameNode"), {})
    assert failed.error == "No video input connected"

    result = await node_executor.execute(
        node("f", "extractFrameNode", timestamp=15, format="jpg"),
        {"video-in": "https://x/v.mp4"},
    )
    assert result.output["frame_data"] == "[Frame at 15s as jpg]"


@pytest.mark.asyncio
async def test_llm_requires_some_input(node_executor, fake_client):
    result = await node_executor.execute(node("l", "llmNode", prompt="Hi"), {})
    assert result.error == "No text or image input connected"
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_llm_substitutes_input(node_executor, fake_client):
    result = await node_executor.execute(
        node("l", "llmNode", prompt="Summarize: {{input}} / {{input}}",
             systemPrompt="Be brief", temperature=0.2, maxTokens=64),
        {"text-in": "the text"},
    )
    assert result.succeeded
    assert result.output["text"] == "reply from gemini"

    _, request = fake_client.calls[0]
    assert request.prompt == "Summarize: the text / the text"
    assert request.system_prompt == "Be brief"
    assert request.temperature == 0.2
    assert request.max_tokens == 64
    assert request.image_data is None


@pytest.mark.asyncio
async def test_llm_with_image_only(node_executor, fake_client):
    result = await node_executor.execute(
        node("l", "llmNode", prompt="Describe the image"),
        {"image-in": "data:image/png;base64,AAA"},
    )
    assert result.succeeded
    _, request = fake_client.calls[0]
    assert request.prompt == "Describe the image"
    assert request.image_data == "data:image/png;base64,AAA"


def test_build_prompt_variants():
    assert build_prompt("Echo {{input}}", "x") == "Echo x"
    assert build_prompt("Translate this", "hola") == "Translate this\n\nInput:\nhola"
    assert build_prompt("", "just text") == "just text"
    assert build_prompt("No input here", None) == "No input here"


@pytest.mark.asyncio
async def test_unknown_node_type(node_executor):
    result = await node_executor.execute(node("u", "audioNode"), {})
    assert result.status == NodeStatus.FAILED
    assert result.error == "Unknown node type: audioNode"


@pytest.mark.asyncio
async def test_invalid_configuration_fails_node(node_executor):
    result = await node_executor.execute(node("c", "cropImageNode", width=0), {"image-in": "x"})
    assert result.status == NodeStatus.FAILED
    assert result.error.startswith("Invalid configuration")


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failure(node_executor, monkeypatch):
    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setitem(node_executor._handlers, "textNode", explode)
    result = await node_executor.execute(node("t", "textNode"), {})
    assert result.status == NodeStatus.FAILED
    assert result.error == "boom"
    assert result.duration is not None


def test_get_node_output():
    done = NodeExecutionResult(node_id="c", status=NodeStatus.COMPLETED,
                               output={"image_data": "[Cropped: 1x1 at (0,0)]"})
    failed = NodeExecutionResult(node_id="c", status=NodeStatus.FAILED, error="nope")

    assert get_node_output(done, "cropImageNode") == "[Cropped: 1x1 at (0,0)]"
    assert get_node_output(failed, "cropImageNode") is None
    assert get_node_output(None, "cropImageNode") is None
    assert get_node_output(done, "unknownNode") is None
