"""
Integration tests for plan feature gates and role permission gates.
"""

from app.models import CustomRole, Profile, TenantSubscription

RESTRICTED_MARKER = b'data-restricted="true"'


class TestFeatureGate:
    """A missing plan feature is a graceful outcome, not an error."""

    def test_page_on_plan_renders(self, authenticated_client):
        response = authenticated_client.get('/dashboard/automation/workflows')

        assert response.status_code == 200
        assert b'data-page="workflows"' in response.data
        assert RESTRICTED_MARKER not in response.data

    def test_page_off_plan_renders_restricted_view(self, login_as, make_user, free_tenant):
        client = login_as(make_user(free_tenant, role='owner'))

        response = client.get('/dashboard/automation/workflows')

        assert response.status_code == 200
        assert RESTRICTED_MARKER in response.data
        assert b'This page is not available' in response.data
        assert b'data-page="workflows"' not in response.data

    def test_runs_page_off_plan(self, login_as, make_user, free_tenant):
        client = login_as(make_user(free_tenant, role='owner'))

        response = client.get('/dashboard/automation/runs')

        assert response.status_code == 200
        assert RESTRICTED_MARKER in response.data

    def test_api_off_plan_returns_unavailable(self, login_as, make_user, free_tenant):
        client = login_as(make_user(free_tenant, role='owner'))

        response = client.get('/api/contracts')

        assert response.status_code == 200
        assert response.get_json() == {
            'status': 'unavailable',
            'feature': 'contracts',
            'message': 'The contracts feature requires a higher plan',
            'upgrade_required': True,
        }

    def test_upgrade_takes_effect_on_next_request(self, session, login_as, make_user, free_tenant):
        client = login_as(make_user(free_tenant, role='owner'))
        assert RESTRICTED_MARKER in client.get('/dashboard/automation/workflows').data

        sub = session.query(TenantSubscription).filter_by(tenant_id=free_tenant.id).one()
        sub.plan_type = 'professional'
        session.commit()

        response = client.get('/dashboard/automation/workflows')
        assert response.status_code == 200
        assert b'data-page="workflows"' in response.data

    def test_lapsed_subscription_loses_feature(self, session, authenticated_client, tenant1):
        sub = session.query(TenantSubscription).filter_by(tenant_id=tenant1.id).one()
        sub.status = 'past_due'
        session.commit()

        response = authenticated_client.get('/dashboard/automation/workflows')
        assert response.status_code == 200
        assert RESTRICTED_MARKER in response.data

    def test_unauthenticated_page(self, client):
        response = client.get('/dashboard/automation/workflows')

        assert response.status_code == 401
        assert RESTRICTED_MARKER in response.data


class TestPermissionGate:
    """Missing role permissions are 403s; pages show the restricted view."""

    def test_member_without_permission_page(self, login_as, make_user, tenant1):
        client = login_as(make_user(tenant1, role='member'))

        response = client.get('/dashboard/automation/workflows')

        assert response.status_code == 403
        assert RESTRICTED_MARKER in response.data

    def test_member_without_permission_api(self, login_as, make_user, tenant1):
        client = login_as(make_user(tenant1, role='member'))

        response = client.get('/api/contracts')

        assert response.status_code == 403
        data = response.get_json()
        assert data['status'] == 'error'
        assert data['permission'] == 'contracts-view'

    def test_admin_has_access(self, login_as, make_user, tenant1):
        client = login_as(make_user(tenant1, role='admin'))
        assert client.get('/dashboard/automation/runs').status_code == 200

    def test_custom_role_grants_access(self, session, login_as, make_user, tenant1):
        role = CustomRole(tenant_id=tenant1.id, name='Automation', permissions=['automation-view'])
        session.add(role)
        session.commit()
        user = make_user(tenant1, role='member')
        profile = session.query(Profile).filter_by(user_id=user.id).one()
        profile.custom_role_id = role.id
        session.commit()

        client = login_as(user)

        response = client.get('/dashboard/automation/workflows')
        assert response.status_code == 200
        assert b'data-page="workflows"' in response.data
        assert client.get('/api/contracts').status_code == 403

    def test_role_downgrade_applies_immediately(self, session, login_as, make_user, tenant1):
        user = make_user(tenant1, role='admin')
        client = login_as(user)
        assert client.get('/dashboard/automation/workflows').status_code == 200

        profile = session.query(Profile).filter_by(user_id=user.id).one()
        profile.role = 'member'
        session.commit()

        assert client.get('/dashboard/automation/workflows').status_code == 403
