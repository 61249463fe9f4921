"""Level-by-level workflow execution."""

import asyncio

import pytest

from services.execution import (
    CYCLE_ERROR,
    DUPLICATE_ID_ERROR,
    NodeStatus,
    RunStatus,
    StatusBroadcaster,
    WorkflowExecutor,
)

from conftest import GatedNodeExecutor, edge, node, rate_limited


@pytest.mark.asyncio
async def test_simple_chain_completes(workflow_executor, fake_client):
    nodes = [
        node("text", "textNode", text="a poem about rivers"),
        node("llm", "llmNode", prompt="Write: {{input}}"),
    ]
    edges = [edge("text", "llm", "text-out", "text-in")]

    state = await workflow_executor.run_workflow(nodes, edges)

    assert state.status == RunStatus.COMPLETED
    assert state.node_statuses == {"text": NodeStatus.COMPLETED, "llm": NodeStatus.COMPLETED}
    assert state.node_results["llm"].output["text"] == "reply from gemini"
    assert fake_client.calls[0][1].prompt == "Write: a poem about rivers"
    assert state.end_time is not None
    assert [lvl.node_ids for lvl in state.levels] == [["text"], ["llm"]]


@pytest.mark.asyncio
async def test_accepts_editor_dicts(workflow_executor):
    nodes = [
        {"id": "text", "type": "textNode", "position": {"x": 0, "y": 0}, "data": {"text": "hi"}},
        {"id": "llm", "type": "llmNode", "data": {"prompt": "{{input}}"}},
    ]
    edges = [{"id": "e1", "source": "text", "target": "llm",
              "sourceHandle": "text-out", "targetHandle": "text-in"}]

    state = await workflow_executor.run_workflow(nodes, edges)
    assert state.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_missing_image_propagates_as_absent_input(workflow_executor, fake_client):
    # image (no upload) -> crop -> llm(image-in), text -> llm(text-in)
    nodes = [
        node("image", "imageUploadNode"),
        node("crop", "cropImageNode", width=100, height=100),
        node("text", "textNode", text="caption this"),
        node("llm", "llmNode", prompt="{{input}}"),
    ]
    edges = [
        edge("image", "crop", "image-out", "image-in"),
        edge("crop", "llm", "image-out", "image-in"),
        edge("text", "llm", "text-out", "text-in"),
    ]

    state = await workflow_executor.run_workflow(nodes, edges)

    assert state.node_statuses["image"] == NodeStatus.FAILED
    assert state.node_results["image"].error == "No image uploaded"
    assert state.node_statuses["crop"] == NodeStatus.FAILED
    assert state.node_results["crop"].error == "No image input connected"
    assert state.node_statuses["llm"] == NodeStatus.COMPLETED
    assert fake_client.calls[0][1].image_data is None
    assert state.status == RunStatus.PARTIAL


@pytest.mark.asyncio
async def test_upstream_output_flows_downstream(workflow_executor, fake_client):
    nodes = [
        node("image", "imageUploadNode", imageUrl="data:image/png;base64,AAA"),
        node("crop", "cropImageNode", x=5, y=5, width=64, height=32),
        node("llm", "llmNode", prompt="Describe"),
    ]
    edges = [
        edge("image", "crop", "image-out", "image-in"),
        edge("crop", "llm", "image-out", "image-in"),
    ]

    state = await workflow_executor.run_workflow(nodes, edges)

    assert state.status == RunStatus.COMPLETED
    assert fake_client.calls[0][1].image_data == "[Cropped: 64x32 at (5,5)]"


@pytest.mark.asyncio
async def test_all_failed(workflow_executor):
    nodes = [node("image", "imageUploadNode"), node("video", "videoUploadNode")]
    state = await workflow_executor.run_workflow(nodes, [])
    assert state.status == RunStatus.FAILED


@pytest.mark.asyncio
async def test_cycle_fails_run(workflow_executor):
    nodes = [node("a", "llmNode"), node("b", "llmNode")]
    edges = [
        edge("a", "b", "text-out", "text-in"),
        edge("b", "a", "text-out", "text-in"),
    ]
    state = await workflow_executor.run_workflow(nodes, edges)
    assert state.status == RunStatus.FAILED
    assert state.error == CYCLE_ERROR
    assert state.node_results == {}


@pytest.mark.asyncio
async def test_duplicate_node_ids_fail_run(workflow_executor, fake_client):
    nodes = [
        node("text", "textNode", text="first"),
        node("text", "textNode", text="second"),
        node("llm", "llmNode", prompt="{{input}}"),
    ]
    edges = [edge("text", "llm", "text-out", "text-in")]

    state = await workflow_executor.run_workflow(nodes, edges)

    assert state.status == RunStatus.FAILED
    assert state.error == f"{DUPLICATE_ID_ERROR}: text"
    assert state.node_results == {}
    assert state.node_statuses == {}
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_empty_workflow_completes(workflow_executor):
    state = await workflow_executor.run_workflow([], [])
    assert state.status == RunStatus.COMPLETED
    assert state.levels == []


@pytest.mark.asyncio
async def test_status_events_in_order(workflow_executor):
    events = []
    nodes = [
        node("text", "textNode", text="x"),
        node("crop", "cropImageNode"),
    ]

    state = await workflow_executor.run_workflow(
        nodes, [], on_status_update=lambda nid, status, result: events.append((nid, status, result)))

    per_node = {}
    for nid, status, _ in events:
        per_node.setdefault(nid, []).append(status)
    assert per_node["text"] == [NodeStatus.PENDING, NodeStatus.RUNNING, NodeStatus.COMPLETED]
    assert per_node["crop"] == [NodeStatus.PENDING, NodeStatus.RUNNING, NodeStatus.FAILED]

    final = [result for nid, status, result in events if status == NodeStatus.COMPLETED]
    assert final[0] is state.node_results["text"]


@pytest.mark.asyncio
async def test_failing_observer_does_not_break_run(workflow_executor):
    def bad_observer(node_id, status, result):
        raise ValueError("observer bug")

    state = await workflow_executor.run_workflow(
        [node("text", "textNode", text="x")], [], on_status_update=bad_observer)
    assert state.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_broadcaster_queue_receives_events(workflow_executor, broadcaster):
    queue = broadcaster.subscribe()
    state = await workflow_executor.run_workflow([node("text", "textNode", text="x")], [])

    received = []
    while not queue.empty():
        received.append(queue.get_nowait())
    assert [e.status for e in received] == [NodeStatus.PENDING, NodeStatus.RUNNING, NodeStatus.COMPLETED]
    assert all(e.execution_id == state.execution_id for e in received)
    assert received[-1].to_dict()["type"] == "node_status"
    broadcaster.unsubscribe(queue)
    assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_full_queue_drops_oldest(node_executor):
    broadcaster = StatusBroadcaster(queue_size=2)
    executor = WorkflowExecutor(node_executor, broadcaster)
    queue = broadcaster.subscribe()

    await executor.run_workflow([node("text", "textNode", text="x")], [])

    assert queue.qsize() == 2
    assert queue.get_nowait().status == NodeStatus.RUNNING
    assert queue.get_nowait().status == NodeStatus.COMPLETED


@pytest.mark.asyncio
async def test_cancel_between_levels(node_executor):
    gated = GatedNodeExecutor(node_executor)
    executor = WorkflowExecutor(gated)
    nodes = [
        node("text", "textNode", text="x"),
        node("llm", "llmNode", prompt="{{input}}"),
    ]
    edges = [edge("text", "llm", "text-out", "text-in")]

    task = asyncio.create_task(executor.run_workflow(nodes, edges, execution_id="run-1"))
    await gated.started.wait()

    assert executor.get_active_executions() == ["run-1"]
    assert executor.cancel("run-1")
    gated.release.set()
    state = await task

    assert state.status == RunStatus.CANCELLED
    assert state.node_statuses["text"] == NodeStatus.COMPLETED
    assert state.node_statuses["llm"] == NodeStatus.SKIPPED
    assert executor.get_active_executions() == []
    assert not executor.cancel("run-1")


@pytest.mark.asyncio
async def test_task_cancellation_propagates(node_executor):
    gated = GatedNodeExecutor(node_executor)
    executor = WorkflowExecutor(gated)
    events = []
    nodes = [
        node("text", "textNode", text="x"),
        node("llm", "llmNode", prompt="{{input}}"),
    ]
    edges = [edge("text", "llm", "text-out", "text-in")]

    task = asyncio.create_task(executor.run_workflow(
        nodes, edges, on_status_update=lambda nid, status, result: events.append((nid, status))))
    await gated.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert ("text", NodeStatus.SKIPPED) in events
    assert ("llm", NodeStatus.SKIPPED) in events
    assert executor.get_active_executions() == []


@pytest.mark.asyncio
async def test_state_to_dict(workflow_executor):
    state = await workflow_executor.run_workflow([node("text", "textNode", text="x")], [])
    d = state.to_dict()
    assert d["status"] == "completed"
    assert d["node_statuses"] == {"text": "completed"}
    assert d["node_results"]["text"]["output"] == {"text": "x"}
    assert d["levels"] == [{"level": 0, "node_ids": ["text"]}]


@pytest.mark.asyncio
async def test_level_nodes_run_together_and_next_level_waits(node_executor):
    gated = GatedNodeExecutor(node_executor)
    executor = WorkflowExecutor(gated)
    nodes = [
        node("a", "textNode", text="describe this"),
        node("b", "imageUploadNode", imageUrl="data:image/png;base64,AAA"),
        node("llm", "llmNode", prompt="{{input}}"),
    ]
    edges = [
        edge("a", "llm", "text-out", "text-in"),
        edge("b", "llm", "image-out", "image-in"),
    ]

    task = asyncio.create_task(executor.run_workflow(nodes, edges))
    await gated.started.wait()
    for _ in range(10):
        await asyncio.sleep(0)

    # both level-0 nodes are in flight while level 1 has not started
    assert sorted(gated.start_order) == ["a", "b"]

    gated.release.set()
    state = await task

    assert gated.start_order[-1] == "llm"
    assert len(gated.start_order) == 3
    assert state.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_exhausted_single_key_still_completes_with_placeholder(workflow_executor, fake_client,
                                                                     sleep_recorder):
    fake_client.outcomes["gemini-key-1"] = rate_limited()
    nodes = [
        node("text", "textNode", text="a poem about rivers"),
        node("llm", "llmNode", prompt="Write: {{input}}"),
    ]
    edges = [edge("text", "llm", "text-out", "text-in")]

    state = await workflow_executor.run_workflow(nodes, edges)

    assert state.status == RunStatus.COMPLETED
    assert state.node_statuses["llm"] == NodeStatus.COMPLETED
    output = state.node_results["llm"].output
    assert output["fallback"] is True
    assert output["provider"] == "fallback"
    assert "Write: a poem about rivers" in output["text"]
    assert sleep_recorder.delays == [2, 4, 8, 2, 4, 8]
