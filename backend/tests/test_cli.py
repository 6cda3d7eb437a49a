# Overview: Pytest coverage for the Flask CLI maintenance commands.

from repairdesk.identity import resolve_actor_token
from repairdesk.models import Product


class TestCli:

    def test_tenants_list(self, app, db_session, tenant_a, tenant_b):
        result = app.test_cli_runner().invoke(args=['tenants', 'list'])
        assert result.exit_code == 0
        assert 'Taller A' in result.output
        assert 'automotive' in result.output

    def test_create_user_and_token(self, app, db_session, tenant_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'users', 'create', '--tenant-id', str(tenant_a.id),
            '--email', 'nuevo@a.test', '--name', 'Nuevo', '--role', 'technician',
        ])
        assert 'PASS Created user: nuevo@a.test' in result.output

        user_id = int(result.output.split('(ID: ')[1].split(')')[0])
        token = runner.invoke(args=['users', 'token', str(user_id)]).output.strip()
        assert resolve_actor_token(token).email == 'nuevo@a.test'

    def test_create_tenant_rejects_bad_timezone(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            'tenants', 'create', '--name', 'Taller C', '--industry', 'electronics', '--timezone', 'Mars/Base',
        ])
        assert result.output.startswith('FAIL')

    def test_inventory_reconcile(self, app, db_session, tenant_a, screen):
        db_session.query(Product).filter_by(id=screen.id).update({Product.quantity: 99})
        db_session.commit()
        runner = app.test_cli_runner()

        result = runner.invoke(args=['inventory', 'reconcile'])
        assert f'DRIFT product {screen.id}' in result.output
        assert 'cached=99 ledger=10' in result.output

        runner.invoke(args=['inventory', 'reconcile', '--fix'])
        db_session.expire_all()
        assert db_session.get(Product, screen.id).quantity == 10
        assert 'PASS' in runner.invoke(args=['inventory', 'reconcile']).output
