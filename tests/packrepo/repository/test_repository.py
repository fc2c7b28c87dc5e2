# tests/packrepo/repository/test_repository.py
from packrepo.deploy.installer import HandleState
from packrepo.model.resource import LocalResource
from packrepo.repository.repository import LOCAL_URI, Repository, buildLocalRepository
from packrepo.semver.semver import parseVersion

from tests.packrepo.fakes import FakeHandle, FakeInstaller, exportPackage, makeResource, requirePackage


def test_findProviders_keeps_declaration_order():
    first = makeResource("org.example.a", exports=[exportPackage("org.example.api")])
    other = makeResource("org.example.b")
    second = makeResource("org.example.c", exports=[exportPackage("org.example.api", "2.0.0")])
    repo = Repository(uri="file:///repo.json5", resources=(first, other, second))

    providers = list(repo.findProviders(requirePackage("org.example.api")))

    assert providers == [first, second]


def test_discover_by_filter_string():
    core = makeResource("org.example.core", "1.0.0")
    tools = makeResource("org.example.tools", "2.0.0")
    repo = Repository(uri="file:///repo.json5", resources=(core, tools))

    assert list(repo.discover("(symbolicname=*.tools)")) == [tools]
    assert list(repo.discover("(version>=1.5.0)")) == [tools]


def test_local_repository_is_recomputed_each_time():
    installer = FakeInstaller([
        FakeHandle("org.example.core", parseVersion("1.0.0"), state=HandleState.ACTIVE, lastModified=10.0),
    ])

    first = buildLocalRepository(installer)
    installer.handles.append(FakeHandle("org.example.extra", parseVersion("0.1.0"), lastModified=20.0))
    second = buildLocalRepository(installer)

    assert first.uri == LOCAL_URI and first.isLocal
    assert len(first) == 1
    assert len(second) == 2
    assert second.lastModified == 20.0
    assert all(isinstance(res, LocalResource) for res in second)
