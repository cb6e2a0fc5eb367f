# tests/test_audit_context.py

import pytest
from django.contrib.auth.models import AnonymousUser
from django.http import HttpResponse
from django.test import RequestFactory

from academics.models import SchoolClass
from utils.context import RequestContext, get_request_context, get_current_user
from utils.middleware import AuditContextMiddleware


@pytest.mark.django_db
def test_new_records_carry_the_request_user_and_ip(django_user_model):
    registrar = django_user_model.objects.create_user(username='registrar')

    with RequestContext(user=registrar, ip_address='192.168.1.20'):
        stream = SchoolClass.objects.create(name='Primary Two', code='P2', level=2)

    stream.refresh_from_db()
    assert stream.created_by_id == str(registrar.pk)
    assert stream.created_from_ip == '192.168.1.20'
    assert stream.updated_by_id == str(registrar.pk)
    assert get_request_context() is None


@pytest.mark.django_db
def test_records_without_context_have_no_audit_user():
    stream = SchoolClass.objects.create(name='Primary Three', code='P3', level=3)

    assert stream.created_by_id is None
    assert stream.created_at == stream.updated_at


@pytest.mark.django_db
def test_anonymous_user_is_not_recorded_as_creator():
    with RequestContext(user=AnonymousUser(), ip_address='192.168.1.21'):
        assert get_current_user() is None
        stream = SchoolClass.objects.create(name='Primary Four', code='P4', level=4)

    stream.refresh_from_db()
    assert stream.created_by_id is None
    assert stream.created_from_ip == '192.168.1.21'


@pytest.mark.django_db
def test_nested_context_restores_the_outer_user(django_user_model):
    bursar = django_user_model.objects.create_user(username='bursar')
    registrar = django_user_model.objects.create_user(username='registrar')

    with RequestContext(user=bursar):
        with RequestContext(user=registrar):
            assert get_current_user() == registrar
        assert get_current_user() == bursar
    assert get_request_context() is None


@pytest.mark.django_db
def test_middleware_skips_anonymous_requests():
    seen = {}

    def view(request):
        seen['user'] = get_current_user()
        return HttpResponse('ok')

    request = RequestFactory().get('/', REMOTE_ADDR='10.1.1.9')
    request.user = AnonymousUser()

    AuditContextMiddleware(view)(request)

    assert seen == {'user': None}


@pytest.mark.django_db
def test_middleware_sets_and_clears_context(django_user_model):
    bursar = django_user_model.objects.create_user(username='bursar')
    seen = {}

    def view(request):
        seen['user'] = get_current_user()
        seen['ip'] = get_request_context()['ip_address']
        return HttpResponse('ok')

    request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='41.210.0.7, 10.0.0.1')
    request.user = bursar

    AuditContextMiddleware(view)(request)

    assert seen == {'user': bursar, 'ip': '41.210.0.7'}
    assert get_request_context() is None
