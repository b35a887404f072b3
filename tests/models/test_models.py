import pytest

from kubewire._cogs.structs.models import BUILTIN_MODELS, ConfigMap, Model, Namespace, Secret, \
                                          Status
from kubewire._cogs.structs.references import Resource


class KopfExample(Model):
    resource = Resource('kopf.dev', 'v1', 'kopfexamples', kind='KopfExample', namespaced=True)


class OverriddenExample(Model):
    resource = Resource('kopf.dev', 'v1', 'kopfexamples', kind='KopfExample', namespaced=True)
    api_version = 'kopf.dev/v2'
    kind = 'Other'


def test_type_meta_from_the_resource():
    assert KopfExample.api_version == 'kopf.dev/v1'
    assert KopfExample.kind == 'KopfExample'
    assert KopfExample.schema is None


def test_type_meta_can_be_overridden():
    assert OverriddenExample.api_version == 'kopf.dev/v2'
    assert OverriddenExample.kind == 'Other'


@pytest.mark.parametrize('model, api_version, kind', [
    (ConfigMap, 'v1', 'ConfigMap'),
    (Secret, 'v1', 'Secret'),
    (Namespace, 'v1', 'Namespace'),
    (Status, 'v1', 'Status'),
])
def test_builtin_models(model, api_version, kind):
    assert model.api_version == api_version
    assert model.kind == kind
    assert model.schema is not None


def test_builtin_models_are_all_addressable():
    assert all(model.resource is not None for model in BUILTIN_MODELS)
    assert Status not in BUILTIN_MODELS


def test_namespaces_are_cluster_scoped():
    assert Namespace.resource.namespaced is False
    assert ConfigMap.resource.namespaced is True


def test_creation_fills_the_type_meta():
    obj = ConfigMap(metadata={'name': 'cm1'})
    assert obj.raw == {'apiVersion': 'v1', 'kind': 'ConfigMap', 'metadata': {'name': 'cm1'}}


def test_creation_keeps_the_explicit_type_meta():
    obj = ConfigMap({'apiVersion': 'v2', 'kind': 'Other'})
    assert obj['apiVersion'] == 'v2'
    assert obj['kind'] == 'Other'


def test_creation_copies_the_data():
    metadata = {'name': 'cm1', 'labels': {'a': 'b'}}
    obj = ConfigMap(metadata=metadata)
    obj.metadata['labels']['a'] = 'c'
    assert metadata == {'name': 'cm1', 'labels': {'a': 'b'}}


def test_from_raw_adopts_the_body_as_is():
    raw = {'metadata': {'name': 'cm1'}}
    obj = ConfigMap.from_raw(raw)
    assert obj.raw is raw
    assert 'kind' not in obj


def test_mapping_interface():
    obj = ConfigMap(metadata={'name': 'cm1'}, data={'k': 'v'})
    assert set(obj) == {'apiVersion', 'kind', 'metadata', 'data'}
    assert len(obj) == 4
    assert obj['data'] == {'k': 'v'}
    assert obj.get('missing') is None


def test_metadata_accessors():
    obj = ConfigMap(metadata={'name': 'cm1', 'namespace': 'ns', 'resourceVersion': '12'})
    assert obj.name == 'cm1'
    assert obj.namespace == 'ns'
    assert obj.resource_version == '12'


def test_metadata_is_created_when_absent():
    obj = ConfigMap()
    assert obj.name is None
    obj.get_metadata()['name'] = 'cm1'
    assert obj.raw['metadata'] == {'name': 'cm1'}


def test_data_accessor_is_modifiable():
    obj = ConfigMap()
    obj.data['k'] = 'v'
    assert obj.raw['data'] == {'k': 'v'}


def test_equality_by_type_and_body():
    assert ConfigMap(data={'a': 'b'}) == ConfigMap(data={'a': 'b'})
    assert ConfigMap(data={'a': 'b'}) != ConfigMap(data={'a': 'c'})
    assert ConfigMap(data={'a': 'b'}) != Secret(data={'a': 'b'})


def test_models_are_unhashable():
    with pytest.raises(TypeError):
        hash(ConfigMap())


def test_to_dict_is_a_deep_copy():
    obj = ConfigMap(data={'a': 'b'})
    body = obj.to_dict()
    body['data']['a'] = 'c'
    assert obj.data == {'a': 'b'}
