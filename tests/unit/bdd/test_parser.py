import pytest

from scenario_runner.bdd.parser import find_feature_files, load_features, parse_feature_text
from scenario_runner.core.exceptions import FeatureLoadError

FEATURE_TEXT = '''@shop
Feature: Shopping cart
  Customers collect products before checkout

  Background:
    Given the store is open

  @smoke
  Scenario: Add a product
    Given I am on the "home" page
    When I add the following products
      | name  | qty |
      | apple | 2   |
    Then the cart contains 2 items

  Scenario Outline: Pay with <method>
    When I pay with <method>
    Then the payment is <outcome>

    Examples:
      | method | outcome  |
      | card   | accepted |
      | cash   | accepted |

  Scenario: Send a note
    When I send the note
      """
      Leave at the door
      """
'''


class TestParseFeatureText:
    """Test Gherkin loading through behave"""

    @pytest.fixture
    def feature(self):
        return parse_feature_text(FEATURE_TEXT, filename='cart.feature')

    def test_feature_attributes(self, feature):
        assert feature.name == 'Shopping cart'
        assert [t.lstrip('@') for t in feature.tags] == ['shop']
        assert feature.filename == 'cart.feature'
        assert 'Customers collect products' in feature.description
        assert [s.text for s in feature.background.steps] == ['the store is open']

    def test_scenarios_in_document_order(self, feature):
        assert [s.name for s in feature.scenarios] == ['Add a product', 'Pay with <method>', 'Send a note']
        assert [t.lstrip('@') for t in feature.scenarios[0].tags] == ['smoke']

    def test_steps_and_data_table(self, feature):
        steps = feature.scenarios[0].steps

        assert [s.keyword for s in steps] == ['Given', 'When', 'Then']
        assert steps[0].text == 'I am on the "home" page'
        assert steps[1].data_table.hashes() == [{'name': 'apple', 'qty': '2'}]
        assert steps[0].data_table is None

    def test_examples(self, feature):
        outline = feature.scenarios[1]

        assert outline.examples.headers == ['method', 'outcome']
        assert outline.examples.rows == [['card', 'accepted'], ['cash', 'accepted']]
        assert outline.examples.source is None
        assert outline.steps[0].text == 'I pay with <method>'

    def test_doc_string(self, feature):
        assert feature.scenarios[2].steps[0].doc_string == 'Leave at the door'

    def test_examples_title_declares_data_source(self):
        text = '''Feature: Users
  Scenario Outline: Create <name>
    When I create user <name>

    Examples: {"type": "csv", "source": "users.csv", "filter": "active=true"}
      | name |
      | seed |
'''
        feature = parse_feature_text(text)
        source = feature.scenarios[0].examples.source

        assert source.type == 'csv'
        assert source.source == 'users.csv'
        assert source.filter == 'active=true'

    def test_invalid_gherkin(self):
        with pytest.raises(FeatureLoadError):
            parse_feature_text("Feature: Broken\n  Scenario: x\n    Given a\n  Nonsense line here\n")


class TestFeatureFiles:
    """Test feature discovery"""

    def test_find_in_directory_sorted_and_unique(self, tmp_path):
        (tmp_path / 'b.feature').write_text(FEATURE_TEXT)
        (tmp_path / 'nested').mkdir()
        (tmp_path / 'nested' / 'a.feature').write_text(FEATURE_TEXT)
        (tmp_path / 'notes.txt').write_text('not a feature')

        files = find_feature_files([tmp_path, tmp_path / 'b.feature'])

        assert [f.name for f in files] == ['b.feature', 'a.feature']

    def test_glob_pattern(self, tmp_path):
        (tmp_path / 'one.feature').write_text(FEATURE_TEXT)
        (tmp_path / 'two.feature').write_text(FEATURE_TEXT)

        files = find_feature_files([str(tmp_path / '*.feature')])

        assert [f.name for f in files] == ['one.feature', 'two.feature']

    def test_missing_path(self, tmp_path):
        with pytest.raises(FeatureLoadError):
            find_feature_files([tmp_path / 'missing.feature'])

    def test_load_features(self, tmp_path):
        (tmp_path / 'cart.feature').write_text(FEATURE_TEXT)

        features = load_features([tmp_path])

        assert len(features) == 1
        assert features[0].filename.endswith('cart.feature')
