# tests/packrepo/resolver/test_resolver.py
import threading

import pytest

from packrepo.core.logging import getLogContext, setLogContext
from packrepo.core.tracing import getTraceHub
from packrepo.deploy.deployer import DeployOption
from packrepo.model.capability import BUNDLE, Requirement
from packrepo.model.resource import LocalResource
from packrepo.repository.repository import Repository
from packrepo.resolver.resolver import IllegalStateError, InterruptedResolution, Reason, Resolver

from tests.packrepo.fakes import (
    FakeInstaller,
    exportPackage,
    installedHandle,
    makeResource,
    requireBundle,
    requirePackage,
)


def _repo(*resources, uri="file:///repo.json"):
    return Repository(uri=uri, resources=tuple(resources))


# ------------------------------------------------------------------ #
# Closure soundness / consistency
# ------------------------------------------------------------------ #

def test_closure_soundness_chain():
    c = makeResource("C", exports=[exportPackage("pkg.c")])
    b = makeResource("B", requires=[requirePackage("pkg.c")], exports=[exportPackage("pkg.b")])
    a = makeResource("A", requires=[requirePackage("pkg.b")])
    resolver = Resolver([_repo(a, b, c)])

    resolver.add(a)

    assert resolver.resolve() is True
    assert set(resolver.getRequiredResources()) == {a, b, c}
    assert resolver.getUnsatisfiedRequirements() == []
    assert resolver.getReason(c) == [Reason(requirePackage("pkg.c"), b)]


def test_unsatisfied_requirement_is_reported_not_raised():
    a = makeResource("A", requires=[requirePackage("pkg.missing"), requirePackage("pkg.b")])
    b = makeResource("B", exports=[exportPackage("pkg.b")])
    resolver = Resolver([_repo(a, b)])
    resolver.add(a)

    assert resolver.resolve() is False
    unsatisfied = resolver.getUnsatisfiedRequirements()
    assert len(unsatisfied) == 1
    assert unsatisfied[0].resource is a
    assert unsatisfied[0].requirement.packageNames == ("pkg.missing",)
    # Resolution continued past the failure
    assert b in resolver.getRequiredResources()


def test_bare_requirement_reason_has_no_resource():
    resolver = Resolver([_repo()])
    resolver.add(requireBundle("nowhere"))

    assert resolver.resolve() is False
    assert resolver.getUnsatisfiedRequirements()[0].resource is None


def test_one_version_per_symbolic_name():
    libV1 = makeResource("lib", "1.0.0", exports=[exportPackage("pkg.lib", "1.0.0")])
    libV2 = makeResource("lib", "2.0.0", exports=[exportPackage("pkg.lib", "2.0.0")])
    a = makeResource("A", requires=[requirePackage("pkg.lib")])
    b = makeResource("B", requires=[requirePackage("pkg.lib")])
    resolver = Resolver([_repo(a, b, libV1, libV2)])
    resolver.add(a)
    resolver.add(b)

    assert resolver.resolve()
    libs = [res for res in resolver.getRequiredResources() if res.symbolicName == "lib"]
    assert libs == [libV2]


def test_conflicting_version_is_unsatisfied():
    libV1 = makeResource("lib", "1.0.0")
    libV2 = makeResource("lib", "2.0.0")
    a = makeResource("A", requires=[requireBundle("lib")])
    needsOld = makeResource("B", requires=[Requirement(BUNDLE, "(&(symbolicname=lib)(version<=1.0.0))")])
    resolver = Resolver([_repo(a, needsOld, libV1, libV2)])
    resolver.add(a)
    resolver.add(needsOld)

    assert resolver.resolve() is False
    assert [reason.resource for reason in resolver.getUnsatisfiedRequirements()] == [needsOld]


def test_two_versions_added_as_roots_conflict():
    first = makeResource("A", "1.0.0")
    second = makeResource("A", "2.0.0")
    resolver = Resolver([_repo(first, second)])
    resolver.add(first)
    resolver.add(second)

    assert resolver.resolve() is False
    assert resolver.getRequiredResources() == [first]
    unsatisfied = resolver.getUnsatisfiedRequirements()
    assert [reason.resource for reason in unsatisfied] == [second]
    assert unsatisfied[0].requirement.namespace == BUNDLE
    names = [res.symbolicName for res in resolver.getRequiredResources()]
    assert len(names) == len(set(names))


def test_same_root_added_twice_is_not_a_conflict():
    a = makeResource("A", "1.0.0")
    resolver = Resolver([_repo(a)])
    resolver.add(a)
    resolver.add(makeResource("A", "1.0.0"))

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [a]


def test_cycles_terminate():
    a = makeResource("A", requires=[requirePackage("pkg.b")], exports=[exportPackage("pkg.a")])
    b = makeResource("B", requires=[requirePackage("pkg.a")], exports=[exportPackage("pkg.b")])
    resolver = Resolver([_repo(a, b)])
    resolver.add(a)

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [a, b]


def test_highest_version_then_first_declared():
    first = makeResource("first", "1.0.0", exports=[exportPackage("pkg.x")])
    second = makeResource("second", "1.0.0", exports=[exportPackage("pkg.x")])
    lower = makeResource("lower", "0.5.0", exports=[exportPackage("pkg.x")])
    resolver = Resolver([_repo(lower, first, second)])
    resolver.add(requirePackage("pkg.x"))

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [first]


def test_remote_repositories_are_searched_in_registration_order():
    inOne = makeResource("one", exports=[exportPackage("pkg.x")])
    inTwo = makeResource("two", exports=[exportPackage("pkg.x")])
    resolver = Resolver([_repo(inOne, uri="file:///1.json"), _repo(inTwo, uri="file:///2.json")])
    resolver.add(requirePackage("pkg.x"))

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [inOne]


# ------------------------------------------------------------------ #
# Local resources
# ------------------------------------------------------------------ #

def test_local_resource_satisfies_without_deploying():
    dep = makeResource("dep", exports=[exportPackage("pkg.dep")])
    a = makeResource("A", requires=[requirePackage("pkg.dep")])
    installer = FakeInstaller([installedHandle(dep)])
    resolver = Resolver([_repo(a, dep)], installer=installer)
    resolver.add(a)

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [a]
    wire = resolver.getWires()[0]
    assert isinstance(wire.provider, LocalResource)
    assert wire.provider.handle is installer.handles[0]


def test_local_preference_by_reference_over_newer_remote():
    installed = makeResource("dep", "1.0.0", exports=[exportPackage("pkg.dep")])
    newer = makeResource("dep", "2.0.0", exports=[exportPackage("pkg.dep")])
    installer = FakeInstaller([installedHandle(installed)])
    resolver = Resolver([_repo(installed, newer)], installer=installer)
    resolver.add(requirePackage("pkg.dep"))

    assert resolver.resolve()
    assert resolver.getRequiredResources() == []
    assert resolver.getWires()[0].provider is resolver.localRepository.resources[0]


def test_local_repository_is_recomputed_per_resolve():
    dep = makeResource("dep", exports=[exportPackage("pkg.dep")])
    installer = FakeInstaller()
    resolver = Resolver([_repo(dep)], installer=installer)
    resolver.add(requirePackage("pkg.dep"))

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [dep]

    installer.handles.append(installedHandle(dep))
    assert resolver.resolve()
    assert resolver.getRequiredResources() == []


# ------------------------------------------------------------------ #
# Optional requirements
# ------------------------------------------------------------------ #

def test_optional_resolution_one_required_two_optional():
    optOne = makeResource("opt.one", exports=[exportPackage("pkg.opt.one")])
    optTwo = makeResource("opt.two", exports=[exportPackage("pkg.opt.two")])
    required = makeResource("req", exports=[exportPackage("pkg.req")])
    root = makeResource("root", requires=[
        requirePackage("pkg.req"),
        requirePackage("pkg.opt.one", optional=True),
        requirePackage("pkg.opt.two", optional=True),
    ])
    resolver = Resolver([_repo(root, required, optOne, optTwo)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [root, required]
    assert resolver.getOptionalResources() == [optOne, optTwo]


def test_optional_failure_never_fails_resolution():
    broken = makeResource("opt.broken", requires=[requirePackage("pkg.nowhere")], exports=[exportPackage("pkg.opt")])
    root = makeResource("root", requires=[
        requirePackage("pkg.opt", optional=True),
        requirePackage("pkg.absent", optional=True),
    ])
    resolver = Resolver([_repo(root, broken)])
    resolver.add(root)

    assert resolver.resolve() is True
    assert resolver.getOptionalResources() == []
    assert resolver.getUnsatisfiedRequirements() == []


def test_optional_falls_back_to_next_candidate_that_closes():
    broken = makeResource("opt.a", "2.0.0", requires=[requirePackage("pkg.nowhere")], exports=[exportPackage("pkg.opt")])
    working = makeResource("opt.b", "1.0.0", exports=[exportPackage("pkg.opt")])
    root = makeResource("root", requires=[requirePackage("pkg.opt", optional=True)])
    resolver = Resolver([_repo(root, broken, working)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getOptionalResources() == [working]


def test_optional_pulls_its_mandatory_closure():
    helper = makeResource("helper", exports=[exportPackage("pkg.helper")])
    opt = makeResource("opt", requires=[requirePackage("pkg.helper")], exports=[exportPackage("pkg.opt")])
    root = makeResource("root", requires=[requirePackage("pkg.opt", optional=True)])
    resolver = Resolver([_repo(root, opt, helper)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getOptionalResources() == [opt, helper]
    assert resolver.getRequiredResources() == [root]


def test_optional_already_in_required_closure_adds_nothing():
    shared = makeResource("shared", exports=[exportPackage("pkg.shared")])
    root = makeResource("root", requires=[
        requirePackage("pkg.shared"),
        requirePackage("pkg.shared", optional=True),
    ])
    resolver = Resolver([_repo(root, shared)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getOptionalResources() == []


def test_multiple_requirement_collects_extra_providers():
    first = makeResource("ext.one", "2.0.0", exports=[exportPackage("pkg.ext")])
    second = makeResource("ext.two", "1.0.0", exports=[exportPackage("pkg.ext")])
    root = makeResource("root", requires=[requirePackage("pkg.ext", multiple=True)])
    resolver = Resolver([_repo(root, first, second)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [root, first]
    assert resolver.getOptionalResources() == [second]


# ------------------------------------------------------------------ #
# Mandatory packages
# ------------------------------------------------------------------ #

def _mandatoryScenario():
    provider = makeResource("api.impl", exports=[exportPackage("org.example.api")])
    root = makeResource("root", requires=[requirePackage("org.example.api", optional=True)])
    return root, provider


def test_mandatory_package_on_root_is_required():
    root, provider = _mandatoryScenario()
    resolver = Resolver([_repo(root, provider)])
    resolver.add(root, mandatoryPackages=["org.example.api"])

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [root, provider]
    assert resolver.getOptionalResources() == []


def test_mandatory_package_without_provider_fails():
    root, _provider = _mandatoryScenario()
    resolver = Resolver([_repo(root)])
    resolver.add(root, mandatoryPackages=["org.example.api"])

    assert resolver.resolve() is False
    assert resolver.getUnsatisfiedRequirements()[0].resource is root


def test_mandatory_packages_from_settings(writeSettings):
    writeSettings('{ resolver: { mandatoryPackages: ["*"] } }')
    root, provider = _mandatoryScenario()
    resolver = Resolver([_repo(root, provider)])
    resolver.add(root)

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [root, provider]


def test_mandatory_packages_apply_per_root():
    root, provider = _mandatoryScenario()
    other = makeResource("other", requires=[requirePackage("org.example.api", optional=True)])
    resolver = Resolver([_repo(root, other, provider)])
    resolver.add(other)
    resolver.add(root, mandatoryPackages=["org.example.api"])

    assert resolver.resolve()
    assert provider in resolver.getRequiredResources()
    assert resolver.getOptionalResources() == []
    assert resolver.getReason(provider)[0] == Reason(requirePackage("org.example.api", optional=True), root)


def test_mandatory_packages_of_bare_requirement_reach_its_provider():
    res2 = makeResource("res2", requires=[requirePackage("org.example.api", optional=True)])
    resolver = Resolver([_repo(res2)])
    resolver.add(requireBundle("res2"), mandatoryPackages=["org.example.api"])

    assert resolver.resolve() is False
    unsatisfied = resolver.getUnsatisfiedRequirements()
    assert len(unsatisfied) == 1
    assert unsatisfied[0].resource is res2
    assert unsatisfied[0].requirement.packageNames == ("org.example.api",)


def test_mandatory_packages_follow_the_root_tree():
    _root, provider = _mandatoryScenario()
    middle = makeResource("middle", requires=[requirePackage("org.example.api", optional=True)])
    top = makeResource("top", requires=[requireBundle("middle")])
    resolver = Resolver([_repo(top, middle, provider)])
    resolver.add(top, mandatoryPackages=["org.example.api"])

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [top, middle, provider]
    assert resolver.getOptionalResources() == []
    assert resolver.getReason(provider) == [Reason(requirePackage("org.example.api", optional=True), middle)]


def test_mandatory_packages_reach_a_provider_already_in_the_closure():
    _root, provider = _mandatoryScenario()
    res2 = makeResource("res2", requires=[requirePackage("org.example.api", optional=True)])
    other = makeResource("other", requires=[requireBundle("res2")])
    resolver = Resolver([_repo(other, res2, provider)])
    resolver.add(other)
    resolver.add(requireBundle("res2"), mandatoryPackages=["org.example.api"])

    assert resolver.resolve()
    assert resolver.getRequiredResources() == [other, res2, provider]
    assert resolver.getOptionalResources() == []


# ------------------------------------------------------------------ #
# Cancellation / session state
# ------------------------------------------------------------------ #

def test_cancel_before_resolve_raises_and_clears():
    a = makeResource("A")
    resolver = Resolver([_repo(a)])
    resolver.add(a)
    assert resolver.resolve()

    resolver.cancel()
    with pytest.raises(InterruptedResolution):
        resolver.resolve()

    assert resolver.getRequiredResources() == []
    with pytest.raises(IllegalStateError):
        resolver.deploy()
    # The flag is consumed by the interrupted run
    assert resolver.resolve()


def test_cancel_event_checked_during_resolution():
    event = threading.Event()
    resources = [makeResource(f"R{i}", requires=[requireBundle(f"R{i + 1}")]) for i in range(5)]
    resources.append(makeResource("R5"))

    class _TrippingRepository(Repository):
        def findProviders(self, requirement):
            event.set()
            return super().findProviders(requirement)

    resolver = Resolver([_TrippingRepository(uri="file:///trip.json", resources=tuple(resources))])
    resolver.add(resources[0])

    with pytest.raises(InterruptedResolution):
        resolver.resolve(cancel=event)
    assert resolver.getRequiredResources() == []


def test_deploy_requires_successful_current_resolution():
    a = makeResource("A", requires=[requireBundle("missing")])
    installer = FakeInstaller()
    resolver = Resolver([_repo(a)], installer=installer)

    with pytest.raises(IllegalStateError):
        resolver.deploy()

    resolver.add(a)
    assert resolver.resolve() is False
    with pytest.raises(IllegalStateError):
        resolver.deploy()


def test_add_after_resolve_invalidates_deploy():
    a = makeResource("A")
    b = makeResource("B")
    installer = FakeInstaller()
    resolver = Resolver([_repo(a, b)], installer=installer)
    resolver.add(a)
    assert resolver.resolve()

    resolver.add(b)
    with pytest.raises(IllegalStateError):
        resolver.deploy(DeployOption.START)

    assert resolver.resolve()
    report = resolver.deploy(DeployOption.START)
    assert report.order == [a, b]
    assert installer.steps("start") == ["A", "B"]


def test_resolve_emits_trace_span():
    a = makeResource("A")
    resolver = Resolver([_repo(a)])
    resolver.add(a)
    resolver.resolve()

    spans = [rec for rec in getTraceHub().snapshot() if rec.get("spanName") == "resolver.resolve"]
    assert [rec["recordType"] for rec in spans] == ["spanStart", "spanEnd"]
    assert spans[-1]["status"] == "ok"


def test_resolve_keeps_callers_log_context():
    a = makeResource("A")
    resolver = Resolver([_repo(a)])
    resolver.add(a)
    setLogContext(requestId="req-1")

    assert resolver.resolve()
    assert getLogContext() == {"requestId": "req-1"}


def test_unexpected_error_ends_span_and_restores_context():
    class _BrokenRepository(Repository):
        def findProviders(self, requirement):
            raise RuntimeError("catalog went away")

    a = makeResource("A", requires=[requireBundle("B")])
    resolver = Resolver([_BrokenRepository(uri="file:///broken.json", resources=())])
    resolver.add(a)
    setLogContext(requestId="req-2")

    with pytest.raises(RuntimeError):
        resolver.resolve()

    assert getLogContext() == {"requestId": "req-2"}
    assert resolver.getRequiredResources() == []
    spans = [rec for rec in getTraceHub().snapshot() if rec.get("spanName") == "resolver.resolve"]
    assert [rec["recordType"] for rec in spans] == ["spanStart", "spanEnd"]
    assert spans[-1]["status"] == "error"
    assert spans[-1]["errorType"] == "RuntimeError"
