from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest

from run_iamviz.model import Region, Service


class FakeRunAPI:
    """In-memory CloudRunAPI keyed by region id."""

    def __init__(
        self,
        regions: List[Region],
        services: Dict[str, List[Service]],
        policies: Optional[Dict[str, Dict[str, Any]]] = None,
        failing_regions: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.regions = regions
        self.services = services
        self.policies = policies or {}
        self.failing_regions = failing_regions or {}
        self.region_calls: List[str] = []
        self.policy_calls: List[str] = []

    def list_regions(self, project: str) -> List[Region]:
        return list(self.regions)

    def list_services(
        self,
        project: str,
        region: Region,
        *,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[Service]:
        self.region_calls.append(region.region_id)
        if region.region_id in self.failing_regions:
            raise self.failing_regions[region.region_id]
        return list(self.services.get(region.region_id, []))

    def get_policy(self, service: Service) -> Dict[str, Any]:
        self.policy_calls.append(service.name)
        return self.policies.get(service.name, {"bindings": []})


def make_service(name: str, region: Region, account: str, namespace: str = "123456") -> Service:
    return Service(name=name, namespace=namespace, region=region, service_account=account)


def invoker_policy(*accounts: str) -> Dict[str, Any]:
    return {
        "bindings": [
            {"role": "roles/run.invoker", "members": [f"serviceAccount:{a}" for a in accounts]},
        ]
    }


US = Region("us-central1", "Iowa")
EU = Region("europe-west1", "Belgium")

ACCT_A = "test-acct-1@demo.iam.gserviceaccount.com"
ACCT_B = "test-acct-2@demo.iam.gserviceaccount.com"
ACCT_C = "test-acct-3@demo.iam.gserviceaccount.com"
ACCT_D = "test-acct-4@demo.iam.gserviceaccount.com"
ACCT_E = "test-acct-5@demo.iam.gserviceaccount.com"


@pytest.fixture
def demo_api() -> FakeRunAPI:
    """
    Five services in us-central1 wired like a small demo project:
    a -> c, a -> d, b -> c, b -> e, e -> a.
    """
    services = [
        make_service("svc-a", US, ACCT_A),
        make_service("svc-b", US, ACCT_B),
        make_service("svc-c", US, ACCT_C),
        make_service("svc-d", US, ACCT_D),
        make_service("svc-e", US, ACCT_E),
    ]
    policies = {
        "svc-a": invoker_policy(ACCT_E),
        "svc-c": invoker_policy(ACCT_A, ACCT_B),
        "svc-d": invoker_policy(ACCT_A),
        "svc-e": invoker_policy(ACCT_B),
    }
    return FakeRunAPI([US, EU], {"us-central1": services, "europe-west1": []}, policies)
