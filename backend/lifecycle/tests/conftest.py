from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from lifecycle.controller import LifecycleController
from lifecycle.tests.mocks import FakeClock, FakeInstanceGateway, StaticProber, make_config

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@pytest.fixture
def gateway() -> FakeInstanceGateway:
    return FakeInstanceGateway()


@pytest.fixture
def prober() -> StaticProber:
    return StaticProber(reachable=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def controller(
    gateway: FakeInstanceGateway,
    prober: StaticProber,
    clock: FakeClock,
) -> AsyncGenerator[LifecycleController]:
    controller = LifecycleController(gateway, prober, make_config(), clock=clock)
    yield controller
    await controller.aclose()
