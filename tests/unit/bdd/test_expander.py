import logging

import pytest

from scenario_runner.bdd.expander import ExamplesExpander, used_columns
from scenario_runner.bdd.model import (
    Background,
    DataTable,
    Examples,
    ExternalDataSource,
    Feature,
    Scenario,
    Step,
)
from scenario_runner.core.exceptions import DataSourceError


class TestExamplesExpander:
    """Test Examples Expander"""

    @pytest.fixture
    def expander(self):
        return ExamplesExpander()

    @pytest.fixture
    def template(self):
        return Scenario(
            name='Login as <role>',
            steps=[
                Step('Given', 'I open the login page'),
                Step('When', 'I log in as "<user>"'),
                Step('Then', 'I see the <role> dashboard'),
            ],
            tags=['@login'],
            examples=Examples(
                headers=['user', 'role', 'notes'],
                rows=[
                    ['ann', 'admin', 'first'],
                    ['bob', 'editor', 'second'],
                    ['cid', 'viewer', 'third'],
                ],
            ),
        )

    def test_plain_scenario_yields_one_instance(self, expander):
        scenario = Scenario(name='Plain', steps=[Step('Given', 'a <literal> bracket')])

        instances = expander.expand(scenario)

        assert len(instances) == 1
        assert instances[0].name == 'Plain'
        assert instances[0].steps[0].text == 'a <literal> bracket'
        assert instances[0].iteration is None

    def test_three_rows_three_instances(self, expander, template):
        instances = expander.expand(template)

        assert [i.name for i in instances] == [
            'Login as admin_Iteration-1',
            'Login as editor_Iteration-2',
            'Login as viewer_Iteration-3',
        ]
        assert instances[1].steps[1].text == 'I log in as "bob"'
        assert instances[2].steps[2].text == 'I see the viewer dashboard'
        assert [i.iteration for i in instances] == [1, 2, 3]
        assert all(i.total_iterations == 3 for i in instances)
        assert all(i.template_name == 'Login as <role>' for i in instances)

    def test_single_row_has_no_suffix(self, expander):
        template = Scenario(
            name='Only <x>',
            steps=[Step('Given', 'value <x>')],
            examples=Examples(headers=['x'], rows=[['1']]),
        )

        assert [i.name for i in expander.expand(template)] == ['Only 1']

    def test_used_columns_and_example_data(self, expander, template):
        assert used_columns(template, ['user', 'role', 'notes']) == ['user', 'role']

        instance = expander.expand(template)[0]
        assert instance.used_columns == ['user', 'role']
        assert instance.example_data == {'user': 'ann', 'role': 'admin'}

    def test_zero_rows_yields_nothing_with_warning(self, expander, caplog):
        template = Scenario(
            name='Empty',
            steps=[Step('Given', 'value <x>')],
            examples=Examples(headers=['x'], rows=[]),
        )

        with caplog.at_level(logging.WARNING):
            instances = expander.expand(template)

        assert instances == []
        assert 'No data rows for scenario: Empty' in caplog.text

    def test_cell_equal_to_header_becomes_empty(self, expander, caplog):
        template = Scenario(
            name='Search <Term>',
            steps=[Step('When', 'I search for "<Term>"')],
            examples=Examples(headers=['Term'], rows=[['term']]),
        )

        with caplog.at_level(logging.WARNING):
            instance = expander.expand(template)[0]

        assert instance.steps[0].text == 'I search for ""'
        assert instance.name == 'Search '
        assert "matches the column name" in caplog.text

    def test_short_row_fills_empty(self, expander):
        template = Scenario(
            name='Pair',
            steps=[Step('Given', '<a> and <b>')],
            examples=Examples(headers=['a', 'b'], rows=[['x']]),
        )

        assert expander.expand(template)[0].steps[0].text == 'x and '

    def test_feature_tags_and_background(self, expander, template):
        feature = Feature(
            name='Auth',
            tags=['@auth', '@login'],
            background=Background(steps=[Step('Given', 'the app is running')]),
        )

        instance = expander.expand(template, feature)[0]

        assert instance.feature_name == 'Auth'
        assert instance.tags == ['@auth', '@login']
        assert [s.text for s in instance.background] == ['the app is running']
        assert instance.identity == 'Auth::Login as admin_Iteration-1'

    def test_step_arguments_are_kept(self, expander):
        table = DataTable([['k', 'v'], ['a', '1']])
        template = Scenario(
            name='With table',
            steps=[Step('Given', 'values for <who>', data_table=table, doc_string='body')],
            examples=Examples(headers=['who'], rows=[['me']]),
        )

        step = expander.expand(template)[0].steps[0]

        assert step.text == 'values for me'
        assert step.data_table is table
        assert step.doc_string == 'body'

    def test_external_source_used(self):
        calls = []

        def resolver(source):
            calls.append(source.source)
            return ['x'], [['from-file-1'], ['from-file-2']]

        template = Scenario(
            name='External <x>',
            steps=[Step('Given', 'value <x>')],
            examples=Examples(
                headers=['x'],
                rows=[['inline']],
                source=ExternalDataSource(type='csv', source='data.csv'),
            ),
        )

        instances = ExamplesExpander(resolver).expand(template)

        assert calls == ['data.csv']
        assert [i.steps[0].text for i in instances] == ['value from-file-1', 'value from-file-2']

    def test_external_source_failure_falls_back_to_inline(self, caplog):
        def resolver(source):
            raise DataSourceError("file vanished")

        template = Scenario(
            name='External <x>',
            steps=[Step('Given', 'value <x>')],
            examples=Examples(
                headers=['x'],
                rows=[['inline']],
                source=ExternalDataSource(type='csv', source='data.csv'),
            ),
        )

        instances = ExamplesExpander(resolver).expand(template)

        assert [i.steps[0].text for i in instances] == ['value inline']
        assert 'file vanished' in caplog.text
