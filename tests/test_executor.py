import asyncio
import json

import pytest
from click.testing import CliRunner

from scenario_runner.bdd.model import Feature, Scenario, Step
from scenario_runner.cli import cli
from scenario_runner.core import ConfigManager, ConfigurationError, NonRetryablePatternStrategy, Status
from scenario_runner.executor import Executor, ExecutorConfig, RegistryBuilder

FEATURE_TEXT = '''@checkout
Feature: Checkout

  Background:
    Given the shop is open

  @smoke
  Scenario: Pay by card
    When I pay 10 with "card"
    Then the order is confirmed

  @slow
  Scenario: Pay by invoice
    When I pay 20 with "invoice"
    Then the order is confirmed

  Scenario Outline: Pay with <method>
    When I pay 5 with "<method>"
    Then the order is confirmed

    Examples:
      | method |
      | cash   |
      | coupon |
'''

STEPS_TEXT = '''from scenario_runner import given, when, then

@given('the shop is open')
def shop_open(context):
    context.store_data('open', True)

@when('I pay {int} with {string}')
def pay(context, amount, method):
    if method == 'coupon':
        raise ValueError('coupon expired')
    context.store_data('paid', (amount, method))

@then('the order is confirmed')
def confirmed(context):
    assert context.get_data('open')
    assert context.get_data('paid')
'''


@pytest.fixture
def project(tmp_path):
    features = tmp_path / 'features'
    features.mkdir()
    (features / 'checkout.feature').write_text(FEATURE_TEXT)
    steps = tmp_path / 'checkout_steps.py'
    steps.write_text(STEPS_TEXT)
    return tmp_path


def project_config(project, **kwargs):
    kwargs.setdefault('step_retry_delay', 0)
    return ExecutorConfig(features=[str(project / 'features')], steps=[str(project / 'checkout_steps.py')], **kwargs)


class TestExecutorConfig:
    """Test ExecutorConfig class"""

    def test_default_config(self):
        """Test default configuration values"""
        config = ExecutorConfig()
        assert config.features == ['features/']
        assert config.parallel_workers == 1
        assert config.retry == 0
        assert config.step_timeout == 30000
        assert config.fail_fast is False
        assert config.dry_run is False

    def test_from_config_with_overrides(self, tmp_path):
        path = tmp_path / 'scenario-runner.yaml'
        path.write_text('executor:\n  retry: 2\n  parallel_workers: 3\ndata_sources:\n  base_dir: data\n')

        config = ExecutorConfig.from_config(ConfigManager(path), retry=5, tags=None)

        assert config.retry == 5
        assert config.parallel_workers == 3
        assert config.data_dir == 'data'
        assert config.tags is None

    def test_from_dict_ignores_unknown(self, caplog):
        config = ExecutorConfig.from_dict({'retry': 1, 'browser': 'firefox'})
        assert config.retry == 1
        assert 'browser' in caplog.text

    @pytest.mark.parametrize('field, value', [
        ('parallel_workers', 0),
        ('retry', -1),
        ('step_timeout', 0),
    ])
    def test_validate(self, field, value):
        with pytest.raises(ConfigurationError):
            Executor(ExecutorConfig(**{field: value}))


class TestExecutor:
    """Test Executor end to end"""

    def test_run_project(self, project):
        result = Executor(project_config(project)).execute()

        statuses = {r.name: r.status for r in result.results}
        assert statuses == {
            'Pay by card': Status.PASSED,
            'Pay by invoice': Status.PASSED,
            'Pay with cash_Iteration-1': Status.PASSED,
            'Pay with coupon_Iteration-2': Status.FAILED,
        }
        assert result.counts == {'passed': 3, 'failed': 1, 'skipped': 0, 'total': 4}
        assert result.has_failures()

    def test_run_parallel(self, project):
        result = Executor(project_config(project, parallel_workers=2)).execute()

        assert result.counts == {'passed': 3, 'failed': 1, 'skipped': 0, 'total': 4}
        assert {r.worker_id for r in result.results} == {0, 1}

    def test_tag_filters(self, project):
        smoke = Executor(project_config(project, tags='@smoke')).execute()
        assert [r.name for r in smoke.results] == ['Pay by card']

        no_slow = Executor(project_config(project, exclude_tags=['slow'])).execute()
        assert 'Pay by invoice' not in [r.name for r in no_slow.results]
        assert len(no_slow.results) == 3

        feature_tag = Executor(project_config(project, tags='checkout')).execute()
        assert len(feature_tag.results) == 4

    def test_name_filter(self, project):
        result = Executor(project_config(project, scenario='PAY WITH')).execute()
        assert [r.name for r in result.results] == ['Pay with cash_Iteration-1', 'Pay with coupon_Iteration-2']

    def test_retry_and_strategy(self, project):
        retried = Executor(project_config(project, retry=1, scenario='coupon')).execute()
        assert retried.results[0].retry_attempt == 1

        declined = Executor(project_config(project, retry=1, scenario='coupon',
                                           non_retryable_patterns=['coupon expired'])).execute()
        assert declined.results[0].retry_attempt == 0

    def test_non_retryable_patterns_select_strategy(self, project):
        executor = Executor(project_config(project, non_retryable_patterns=['quota']))
        assert isinstance(executor.retry_strategy, NonRetryablePatternStrategy)

    def test_fail_fast(self, project):
        result = Executor(project_config(project, fail_fast=True, scenario='Pay with')).execute()
        assert [r.status for r in result.results] == [Status.PASSED, Status.FAILED]

    def test_dry_run_invokes_nothing(self, project):
        registry = RegistryBuilder()
        calls = []
        registry.step('the shop is open')(lambda context: calls.append('open'))
        executor = Executor(
            ExecutorConfig(features=[str(project / 'features')], dry_run=True),
            registry=registry.build(),
        )

        result = executor.execute()

        assert calls == []
        assert result.results == []
        assert [entry['scenario'] for entry in result.plan] == [
            'Pay by card', 'Pay by invoice', 'Pay with cash_Iteration-1', 'Pay with coupon_Iteration-2'
        ]
        first = result.plan[0]['steps']
        assert first[0] == {'keyword': 'Given', 'text': 'the shop is open', 'matched': True,
                            'pattern': 'the shop is open'}
        assert first[1]['matched'] is False
        assert not result.has_failures()

    def test_execute_parsed_features(self):
        builder = RegistryBuilder()
        builder.step('nothing happens')(lambda context: None)
        feature = Feature(name='In memory', scenarios=[
            Scenario(name='Empty'),
            Scenario(name='Quiet', steps=[Step('Given', 'nothing happens')]),
        ])

        result = Executor(registry=builder.build()).execute([feature])

        assert result.counts == {'passed': 2, 'failed': 0, 'skipped': 0, 'total': 2}
        data = result.to_dict()
        assert data['summary']['total'] == 2
        assert data['scenarios'][1]['steps'][0]['status'] == 'passed'

    @pytest.mark.parametrize('workers', [1, 3])
    def test_failures_reach_run_result(self, workers):
        builder = RegistryBuilder()
        builder.step('it breaks')(lambda context: 1 / 0)
        feature = Feature(name='Broken', scenarios=[Scenario(name='Always', steps=[Step('Given', 'it breaks')])])

        result = Executor(ExecutorConfig(parallel_workers=workers), registry=builder.build()).execute([feature])

        assert result.counts == {'passed': 0, 'failed': 1, 'skipped': 0, 'total': 1}
        assert result.has_failures()
        assert isinstance(result.results[0].error.cause, ZeroDivisionError)

    def test_parallel_run_spans_features(self):
        builder = RegistryBuilder()
        running = {'now': 0, 'peak': 0}

        @builder.step('a slow step')
        async def slow(context):
            running['now'] += 1
            running['peak'] = max(running['peak'], running['now'])
            await asyncio.sleep(0.05)
            running['now'] -= 1

        features = [
            Feature(name=f'Feature {i}', scenarios=[Scenario(name='Only', steps=[Step('Given', 'a slow step')])])
            for i in range(4)
        ]

        result = Executor(ExecutorConfig(parallel_workers=4), registry=builder.build()).execute(features)

        assert running['peak'] == 4
        assert result.counts == {'passed': 4, 'failed': 0, 'skipped': 0, 'total': 4}
        assert {r.worker_id for r in result.results} == {0, 1, 2, 3}


class TestCli:
    """Test command line interface"""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def invoke(self, runner, project, *args):
        return runner.invoke(cli, ['-c', str(project / 'missing.yaml'), *args])

    def test_version(self, runner, project):
        result = self.invoke(runner, project, 'version')
        assert result.exit_code == 0
        assert 'Scenario Runner v0.1.0' in result.output

    def test_run_reports_failures(self, runner, project):
        output = project / 'result.json'
        result = self.invoke(
            runner, project, 'run', str(project / 'features'),
            '--steps', str(project / 'checkout_steps.py'),
            '--json-output', str(output),
        )

        assert result.exit_code == 1
        assert 'Summary: 4 scenario(s), 3 passed, 1 failed, 0 skipped' in result.output
        data = json.loads(output.read_text())
        assert data['summary'] == {'passed': 3, 'failed': 1, 'skipped': 0, 'total': 4}

    def test_run_passing_subset(self, runner, project):
        result = self.invoke(
            runner, project, 'run', str(project / 'features'),
            '-s', str(project / 'checkout_steps.py'),
            '--tags', 'smoke',
        )

        assert result.exit_code == 0
        assert '[PASSED ] Checkout :: Pay by card' in result.output

    def test_dry_run(self, runner, project):
        result = self.invoke(runner, project, 'run', str(project / 'features'), '--dry-run')

        assert result.exit_code == 0
        assert 'Dry run - execution order:' in result.output
        assert 'Total scenarios: 4' in result.output
        assert 'Undefined steps: 12' in result.output

    def test_missing_feature_path(self, runner, project):
        result = self.invoke(runner, project, 'run', str(project / 'nowhere'))

        assert result.exit_code == 1
        assert 'Feature path not found' in result.output

    def test_steps_command(self, runner, project):
        result = self.invoke(runner, project, 'steps', '-s', str(project / 'checkout_steps.py'))

        assert result.exit_code == 0
        assert 'I pay {int} with {string}  (pay)' in result.output
        assert 'Total: 3 step definition(s)' in result.output


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
