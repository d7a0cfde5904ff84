import copy
from types import SimpleNamespace

import pytest

from cdagent.backend import AlreadyExistsError, DeletionPropagation, NotFoundError
from cdagent.inbound import (
    LAST_APPLIED_ANNOTATION,
    EventDiscardedError,
    EventTarget,
    EventType,
    InboundHandler,
)
from cdagent.options import AgentMode


class FakeManager:
    def __init__(self, exists=True, match=False):
        self.exists = exists
        self.match = match
        self.calls = []
        self.managed = set()
        self.ignored = set()
        self.created = []
        self.deleted = []
        self.create_error = None
        self.delete_error = None
        self.unmanage_error = None

    def compare_source_uid(self, incoming):
        self.calls.append("compare_source_uid")
        return self.exists, self.match

    def is_managed(self, name):
        return name in self.managed

    def manage(self, name):
        self.managed.add(name)

    def unmanage(self, name):
        self.calls.append("unmanage")
        if self.unmanage_error:
            raise self.unmanage_error
        self.managed.discard(name)

    def is_change_ignored(self, name, resource_version):
        return (name, resource_version) in self.ignored

    def create(self, obj):
        self.calls.append("create")
        if self.create_error:
            raise self.create_error
        result = copy.deepcopy(obj)
        self.created.append(result)
        return result

    def delete(self, namespace, obj, deletion_propagation):
        self.calls.append("delete")
        if self.delete_error:
            raise self.delete_error
        self.deleted.append((namespace, obj["metadata"]["name"], deletion_propagation))

    def update_managed_app(self, app):
        self.calls.append("update_managed_app")
        return app

    def update_operation(self, app):
        self.calls.append("update_operation")
        return app

    def update_app_project(self, project):
        self.calls.append("update_app_project")
        return project


def make_resource(name="test", namespace="argocd", **meta):
    return {"metadata": {"name": name, "namespace": namespace, **meta}}


def make_event(target, kind, resource):
    return SimpleNamespace(target=target, type=kind, resource=resource)


@pytest.fixture
def handler():
    return InboundHandler(
        namespace="argocd",
        mode=AgentMode.MANAGED,
        app_manager=FakeManager(),
        project_manager=FakeManager(),
    )


# Applications: creation


def test_create_application_discarded_in_unmanaged_mode(handler):
    handler.mode = AgentMode.AUTONOMOUS
    with pytest.raises(EventDiscardedError, match="not in managed mode"):
        handler.create_application(make_resource(namespace="default"))
    assert handler.app_manager.calls == []


def test_create_application_discarded_when_managed(handler):
    handler.app_manager.manage("argocd/test")
    with pytest.raises(EventDiscardedError, match="is already managed"):
        handler.create_application(make_resource(namespace="default"))


def test_create_application(handler):
    app = make_resource(
        namespace="default",
        annotations={LAST_APPLIED_ANNOTATION: "{}", "keep": "me"},
    )
    created = handler.create_application(app)
    assert created["metadata"]["namespace"] == "argocd"
    assert created["metadata"]["annotations"] == {"keep": "me"}
    assert handler.app_manager.calls == ["create"]


def test_create_application_already_exists_returns_none(handler):
    handler.app_manager.create_error = AlreadyExistsError("applications", "test")
    assert handler.create_application(make_resource()) is None


# Applications: processing with UID checks


def test_process_create_with_uid_mismatch_replaces_app(handler):
    mgr = handler.app_manager
    mgr.exists, mgr.match = True, False
    mgr.manage("argocd/test")
    incoming = make_resource(uid="new_uid")
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.CREATE, incoming)
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage", "create"]
    assert mgr.created[0]["metadata"]["uid"] == "new_uid"


def test_process_create_with_same_uid_updates(handler):
    mgr = handler.app_manager
    mgr.exists, mgr.match = True, True
    mgr.manage("argocd/test")
    incoming = make_resource(uid="old_uid", labels={"name": "test"})
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.CREATE, incoming)
    )
    assert mgr.calls == ["compare_source_uid", "update_managed_app"]


def test_process_update_with_uid_mismatch_replaces_app(handler):
    mgr = handler.app_manager
    mgr.exists, mgr.match = True, False
    mgr.manage("argocd/test")
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.SPEC_UPDATE, make_resource(uid="new_uid"))
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage", "create"]


def test_process_update_creates_missing_app(handler):
    mgr = handler.app_manager
    mgr.exists, mgr.match = False, False
    mgr.manage("argocd/test")
    incoming = make_resource(name="new-app")
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.SPEC_UPDATE, incoming)
    )
    assert mgr.calls == ["compare_source_uid", "create"]
    assert mgr.created == [incoming]


def test_process_update_with_same_uid(handler):
    mgr = handler.app_manager
    mgr.exists, mgr.match = True, True
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.SPEC_UPDATE, make_resource())
    )
    assert mgr.calls == ["compare_source_uid", "update_managed_app"]


def test_process_delete(handler):
    mgr = handler.app_manager
    mgr.manage("argocd/test")
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, EventType.DELETE, make_resource(uid="new_uid"))
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage"]
    assert not mgr.is_managed("argocd/test")
    assert mgr.deleted == [("argocd", "test", DeletionPropagation.BACKGROUND)]


def test_process_create_error_propagates(handler):
    mgr = handler.app_manager
    mgr.exists = False
    mgr.create_error = RuntimeError("boom")
    with pytest.raises(RuntimeError, match="boom"):
        handler.process_incoming_application(
            make_event(EventTarget.APPLICATION, EventType.CREATE, make_resource())
        )


def test_process_unknown_type_is_ignored(handler):
    handler.process_incoming_application(
        make_event(EventTarget.APPLICATION, "bogus", make_resource())
    )
    assert handler.app_manager.calls == ["compare_source_uid"]


def test_process_incoming_event_dispatches(handler):
    handler.app_manager.exists = False
    handler.process_incoming_event(
        make_event(EventTarget.APPLICATION, EventType.SPEC_UPDATE, make_resource())
    )
    handler.project_manager.exists = False
    handler.process_incoming_event(
        make_event(EventTarget.APP_PROJECT, EventType.SPEC_UPDATE, make_resource())
    )
    assert handler.app_manager.calls == ["compare_source_uid", "create"]
    assert handler.project_manager.calls == ["compare_source_uid", "create"]


def test_process_incoming_event_unknown_target(handler):
    with pytest.raises(ValueError, match="unknown event target"):
        handler.process_incoming_event(make_event("bogus", EventType.CREATE, make_resource()))


# Applications: update and delete


def test_update_application_discarded_when_version_seen(handler):
    handler.app_manager.ignored.add(("argocd/test", "12345"))
    app = make_resource(namespace="default", resourceVersion="12345")
    with pytest.raises(EventDiscardedError, match="has already been seen"):
        handler.update_application(app)


def test_update_application_managed_mode(handler):
    app = make_resource(namespace="default", resourceVersion="12345")
    result = handler.update_application(app)
    assert result["metadata"]["namespace"] == "argocd"
    assert handler.app_manager.calls == ["update_managed_app"]


def test_update_application_autonomous_mode(handler):
    handler.mode = AgentMode.AUTONOMOUS
    result = handler.update_application(make_resource(resourceVersion="12345"))
    assert result["metadata"]["name"] == "test"
    assert handler.app_manager.calls == ["update_operation"]


def test_update_application_unknown_mode(handler):
    handler.mode = AgentMode.UNKNOWN
    with pytest.raises(ValueError, match="unknown operation mode"):
        handler.update_application(make_resource())


def test_delete_application_not_managed(handler):
    with pytest.raises(LookupError, match="is not managed"):
        handler.delete_application(make_resource())


def test_delete_application_not_found_keeps_managed(handler):
    mgr = handler.app_manager
    mgr.manage("argocd/test")
    mgr.delete_error = NotFoundError("applications", "test")
    handler.delete_application(make_resource())
    assert mgr.is_managed("argocd/test")
    assert mgr.calls == ["delete"]


def test_delete_application_other_error_propagates(handler):
    mgr = handler.app_manager
    mgr.manage("argocd/test")
    mgr.delete_error = RuntimeError("down")
    with pytest.raises(RuntimeError, match="down"):
        handler.delete_application(make_resource())


def test_delete_application_unmanage_failure_is_swallowed(handler):
    mgr = handler.app_manager
    mgr.manage("argocd/test")
    mgr.unmanage_error = RuntimeError("nope")
    handler.delete_application(make_resource())
    assert mgr.calls == ["delete", "unmanage"]


# AppProjects


def test_create_app_project_discarded_in_unmanaged_mode(handler):
    handler.mode = AgentMode.AUTONOMOUS
    with pytest.raises(EventDiscardedError, match="not in managed mode"):
        handler.create_app_project(make_resource(namespace="default"))


def test_create_app_project_discarded_when_managed(handler):
    handler.app_manager.manage("test")
    with pytest.raises(EventDiscardedError, match="is already managed"):
        handler.create_app_project(make_resource(namespace="default"))


def test_create_app_project(handler):
    project = make_resource(namespace="default")
    project["spec"] = {"sourceNamespaces": ["default", "argocd"]}
    created = handler.create_app_project(project)
    assert created["metadata"]["namespace"] == "argocd"
    assert created["spec"] == {"sourceNamespaces": ["default", "argocd"]}
    assert handler.project_manager.calls == ["create"]


def test_create_app_project_already_exists_propagates(handler):
    handler.project_manager.create_error = AlreadyExistsError("appprojects", "test")
    with pytest.raises(AlreadyExistsError):
        handler.create_app_project(make_resource())


def test_process_project_create_with_uid_mismatch(handler):
    mgr = handler.project_manager
    mgr.exists, mgr.match = True, False
    mgr.manage("test")
    handler.process_incoming_app_project(
        make_event(EventTarget.APP_PROJECT, EventType.CREATE, make_resource(uid="new_uid"))
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage", "create"]
    assert mgr.created[0]["metadata"]["uid"] == "new_uid"


def test_process_project_create_with_same_uid_updates(handler):
    mgr = handler.project_manager
    mgr.exists, mgr.match = True, True
    mgr.manage("test")
    handler.process_incoming_app_project(
        make_event(EventTarget.APP_PROJECT, EventType.CREATE, make_resource(uid="old_uid"))
    )
    assert mgr.calls == ["compare_source_uid", "update_app_project"]


def test_process_project_update_with_uid_mismatch(handler):
    mgr = handler.project_manager
    mgr.exists, mgr.match = True, False
    mgr.manage("test")
    handler.process_incoming_app_project(
        make_event(EventTarget.APP_PROJECT, EventType.SPEC_UPDATE, make_resource())
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage", "create"]


def test_process_project_update_creates_missing(handler):
    mgr = handler.project_manager
    mgr.exists, mgr.match = False, False
    incoming = make_resource(name="new-app-project")
    handler.process_incoming_app_project(
        make_event(EventTarget.APP_PROJECT, EventType.SPEC_UPDATE, incoming)
    )
    assert mgr.calls == ["compare_source_uid", "create"]
    assert mgr.created == [incoming]


def test_process_project_delete(handler):
    mgr = handler.project_manager
    mgr.manage("test")
    handler.process_incoming_app_project(
        make_event(EventTarget.APP_PROJECT, EventType.DELETE, make_resource())
    )
    assert mgr.calls == ["compare_source_uid", "delete", "unmanage"]
    assert not mgr.is_managed("test")
    assert not handler.app_manager.is_managed("test")


def test_update_app_project(handler):
    project = make_resource(resourceVersion="12345")
    result = handler.update_app_project(project)
    assert result is project
    assert handler.project_manager.calls == ["update_app_project"]


def test_update_app_project_discarded_when_version_seen(handler):
    handler.app_manager.ignored.add(("test", "12345"))
    with pytest.raises(EventDiscardedError, match="has already been seen"):
        handler.update_app_project(make_resource(resourceVersion="12345"))


def test_delete_app_project_not_managed(handler):
    with pytest.raises(LookupError, match="is not managed"):
        handler.delete_app_project(make_resource())