"""
Tests for ASGICoreApplication - module mounting, error handlers and lifespan tasks.
"""

from typing import List

import anyio
from fastapi.testclient import TestClient

from com_yachtie_consensus.asgi import ASGICoreApplication, ASGIConfig
from com_yachtie_consensus.consensus import ConsensusCore
from com_yachtie_consensus.consensus.ConsensusASGIModule import ConsensusASGIModule
from com_yachtie_consensus.consensus.internal.ConsensusProtocols import InvocationMetric
from com_yachtie_consensus.metrics import BufferedMetricsRecorder
from com_yachtie_consensus.store import InMemoryConfigurationStore
from com_yachtie_consensus.utils.instructor import MockInstructorModelInvoker


def make_store() -> InMemoryConfigurationStore:
    return InMemoryConfigurationStore(
        models=[ConsensusCore.model("gpt", "openai"), ConsensusCore.model("claude", "anthropic")],
        rules=[
            ConsensusCore.rule(
                id="default",
                module="global",
                action_type="*",
                required_agreement_threshold=0.5,
                human_approval_threshold=0.7,
                auto_execute_threshold=0.9,
                minimum_models_required=2,
            )
        ],
    )


class TestASGICoreApplication:
    """Test suite for ASGICoreApplication."""

    def test_mount_with_application_prefix(self) -> None:
        store = make_store()
        engine = ConsensusCore.engine(store, MockInstructorModelInvoker({}))
        application = ASGICoreApplication(ASGIConfig(prefix="/api/v1"))
        application.mount_module(ConsensusASGIModule(engine=engine, configuration=store))

        with TestClient(application.app) as client:
            assert client.get("/api/v1/consensus/health").status_code == 200
            missing = client.post(
                "/api/v1/consensus/requests",
                json={"content": "x", "module": "crew", "action_type": "hire", "session_id": "s"},
            )

        # The global default rule applies, but no model has a scripted reply
        assert missing.status_code == 503
        assert missing.json()["error"] == "insufficient_quorum"

    def test_buffered_metrics_drained_while_running(self) -> None:
        received: List[InvocationMetric] = []

        async def sink(metric: InvocationMetric) -> None:
            received.append(metric)

        store = make_store()
        metrics = BufferedMetricsRecorder(sink)
        engine = ConsensusCore.engine(
            store, MockInstructorModelInvoker({"gpt": "Hire", "claude": "Hire"}), metrics=metrics
        )
        application = ASGICoreApplication()
        application.mount_module(ConsensusASGIModule(engine=engine, configuration=store, metrics=metrics))

        with TestClient(application.app) as client:
            response = client.post(
                "/consensus/requests",
                json={"content": "Hire a deckhand?", "module": "crew", "action_type": "hire", "session_id": "s"},
            )
            assert response.status_code == 200
            for _ in range(50):
                if len(received) == 2:
                    break
                client.portal.call(anyio.sleep, 0.01)

        assert sorted(metric.model_id for metric in received) == ["claude", "gpt"]
