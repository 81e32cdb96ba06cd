import os
import textwrap
import threading

import pytest
from unittest.mock import Mock

from behavior_driven_ui.bdd.bundle import SupportBundle
from behavior_driven_ui.bdd.runner import (
    BundleRunner,
    HardTimeout,
    applied_environment,
    apply_order,
    execute_run,
    make_behave_config,
    make_world_factory,
    run_features,
    validate_environment,
)
from behavior_driven_ui.bdd.steps import BehaviorDrivenWorld, build_builtin_bundle
from behavior_driven_ui.bdd.support_builder import resolve_support_builder
from behavior_driven_ui.core.config import resolve_config, validate_user_config
from behavior_driven_ui.core.exceptions import ConfigValidationError, EnvironmentVariableError
from behavior_driven_ui.driver.mock_driver import MockDriver

FORM_FEATURE = """
Feature: Order form

  Scenario: Fill the form
    Given a fresh test world
    When I navigate to "/form"
    And I fill "#name" with "Ada"
    And I select the options "sprinkles,chocolate" from "#toppings"
    Then the value of "#name" should be "Ada"
    And the values of "#toppings" should be:
      | sprinkles |
      | chocolate |
    And the driver should have navigated to "http://localhost:3000/form"

  @wip
  Scenario: Missing data
    Then the data for "coupon" should be "SAVE10"
"""

USER_STEPS = """
import os


def before_scenario(context, scenario):
    context.world.set_data("user", "guest")


@then('the environment flag should be "{value}"')
def step_env_flag(context, value):
    assert os.environ.get("BDUI_TEST_FLAG") == value
"""

USER_FEATURE = """
Feature: User support

  Scenario: User hooks run after the builtin setup
    Then the data for "user" should be "guest"
    And the environment flag should be "on"
    When I navigate to "/shop"
    Then the driver should have navigated to "http://localhost:3000/shop"
"""


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip())
    return path


def mock_config(project_root, **extra):
    raw = {"base_url": "http://localhost:3000", "driver": {"kind": "mock"}}
    raw.update(extra)
    return resolve_config(validate_user_config(raw), project_root=str(project_root))


class TestEnvironment:
    """Test environment handling for a run"""

    def test_valid_names(self):
        """Test valid variable names pass"""
        validate_environment({"API_MODE": "fake", "port2": "1"})

    def test_invalid_name(self):
        """Test invalid names are reported"""
        with pytest.raises(EnvironmentVariableError) as exc_info:
            validate_environment({"API-MODE": "fake"}, "bdui.config.yaml")
        assert exc_info.value.key == "API-MODE"
        assert exc_info.value.file_path == "bdui.config.yaml"

    @pytest.mark.parametrize("key", ["FOO\n", "FOO BAR", "", "FÖO"])
    def test_whole_name_must_match(self, key):
        """Test names with trailing newlines or other characters are rejected"""
        with pytest.raises(EnvironmentVariableError):
            validate_environment({key: "1"})

    def test_newline_name_from_config(self, tmp_path):
        """Test a resolved configuration with a newline in a name is rejected"""
        config = mock_config(tmp_path, environment={"FOO\n": "1"})
        with pytest.raises(EnvironmentVariableError):
            validate_environment(config.environment)

    def test_applied_and_restored(self, monkeypatch):
        """Test variables are set for the block and restored afterwards"""
        monkeypatch.setenv("BDUI_EXISTING", "before")
        monkeypatch.delenv("BDUI_NEW", raising=False)

        with applied_environment({"BDUI_EXISTING": "during", "BDUI_NEW": "1"}):
            assert os.environ["BDUI_EXISTING"] == "during"
            assert os.environ["BDUI_NEW"] == "1"

        assert os.environ["BDUI_EXISTING"] == "before"
        assert "BDUI_NEW" not in os.environ

    def test_restored_on_error(self, monkeypatch):
        """Test restoration happens when the block raises"""
        monkeypatch.delenv("BDUI_NEW", raising=False)
        with pytest.raises(RuntimeError):
            with applied_environment({"BDUI_NEW": "1"}):
                raise RuntimeError("boom")
        assert "BDUI_NEW" not in os.environ


class TestHardTimeout:
    """Test the hard run timeout"""

    def test_expiry_cleans_up_and_exits(self):
        """Test cleanup runs and the process exits with 1"""
        exited = threading.Event()
        cleanup = Mock()
        exit_func = Mock(side_effect=lambda code: exited.set())

        with HardTimeout(0.01, on_expire=cleanup, grace=1.0, exit_func=exit_func) as timeout:
            assert exited.wait(2.0)

        assert timeout.expired
        cleanup.assert_called_once()
        exit_func.assert_called_once_with(1)

    def test_failing_cleanup_still_exits(self):
        """Test a raising cleanup does not prevent the exit"""
        exited = threading.Event()
        exit_func = Mock(side_effect=lambda code: exited.set())

        with HardTimeout(0.01, on_expire=Mock(side_effect=RuntimeError("stuck")), exit_func=exit_func):
            assert exited.wait(2.0)
        exit_func.assert_called_once_with(1)

    def test_cancelled_when_run_finishes(self):
        """Test leaving the block cancels the timer"""
        exit_func = Mock()
        with HardTimeout(60, exit_func=exit_func) as timeout:
            pass
        assert not timeout.expired
        exit_func.assert_not_called()


class TestBehaveIntegration:
    """Test the pieces that adapt behave"""

    def test_behave_config(self, tmp_path):
        """Test tags and formatters are passed to behave"""
        config = mock_config(tmp_path, behave={"tag_expression": "@smoke"})

        behave_config = make_behave_config(config, ["null"])

        assert behave_config.format == ["null"]
        assert "smoke" in str(behave_config.tag_expression)

    def test_default_format(self, tmp_path):
        """Test a formatter is always configured"""
        behave_config = make_behave_config(mock_config(tmp_path))
        assert behave_config.format == [behave_config.default_format]

    def test_apply_order_defined(self):
        """Test defined order leaves features alone"""
        features = [Mock(run_items=[1, 2]), Mock(run_items=[3])]
        original = list(features)

        assert apply_order(features, "defined") is None
        assert features == original

    def test_apply_order_random_is_reproducible(self):
        """Test the same seed gives the same order"""
        features = [Mock(run_items=list(range(10))) for _ in range(5)]

        def shuffled():
            batch = list(features)
            for feature in batch:
                feature.run_items = list(range(10))
            seed = apply_order(batch, "random", seed=42)
            assert seed == 42
            return [(feature, list(feature.run_items)) for feature in batch]

        assert shuffled() == shuffled()

    def test_world_factory(self, tmp_path):
        """Test worlds get the run's configuration and the bundle's timeout"""
        bundle = SupportBundle(world_constructor=BehaviorDrivenWorld, default_timeout=7000)
        make_world = make_world_factory(bundle, mock_config(tmp_path))

        first, second = make_world(), make_world()

        assert first is not second
        assert first.config.base_url == "http://localhost:3000"
        assert first.config.default_timeout == 7000
        assert isinstance(first.ensure_driver(), MockDriver)

    def test_dispatcher_attaches_world_and_runs_all_after_hooks(self, tmp_path):
        """Test hook dispatch order and error handling"""
        config = mock_config(tmp_path)
        calls = []
        bundle = SupportBundle()
        bundle.add_hook("before_scenario", lambda context, scenario: calls.append("before"))
        bundle.add_hook("after_scenario", Mock(side_effect=ValueError("first")))
        bundle.add_hook("after_scenario", lambda context, scenario: calls.append("after"))
        world = object()
        runner = BundleRunner(make_behave_config(config), [], bundle, step_registry=None, make_world=lambda: world)
        context = Mock()

        runner.hooks["before_scenario"](context, "scenario")
        assert context.world is world

        with pytest.raises(ValueError, match="first"):
            runner.hooks["after_scenario"](context, "scenario")
        assert calls == ["before", "after"]
        assert "before_all" not in runner.hooks


class TestRunFeatures:
    """Test running features end to end with the mock driver"""

    def test_run(self, tmp_path):
        """Test a passing and a failing scenario are counted"""
        write(tmp_path / "features" / "form.feature", FORM_FEATURE)
        builder = resolve_support_builder()
        bundle = build_builtin_bundle(builder)

        result = run_features(bundle, mock_config(tmp_path), formats=["null"], builder=builder)

        assert not result.success
        assert result.features == 1
        assert result.failed_features == 1
        assert result.scenarios == 2
        assert result.failed_scenarios == 1

    def test_tag_expression(self, tmp_path):
        """Test tagged-out scenarios are skipped"""
        write(tmp_path / "features" / "form.feature", FORM_FEATURE)
        builder = resolve_support_builder()
        config = mock_config(tmp_path, behave={"tag_expression": "not @wip"})

        result = run_features(build_builtin_bundle(builder), config, formats=["null"], builder=builder)

        assert result.success
        assert result.failed_scenarios == 0

    def test_random_order_reports_seed(self, tmp_path):
        """Test random order runs and returns its seed"""
        write(tmp_path / "features" / "form.feature", FORM_FEATURE)
        builder = resolve_support_builder()
        config = mock_config(tmp_path, behave={"order": "random", "tag_expression": "not @wip"})

        result = run_features(build_builtin_bundle(builder), config, formats=["null"], builder=builder, seed=7)

        assert result.success
        assert result.seed == 7

    def test_no_features(self, tmp_path):
        """Test an empty project succeeds without running behave"""
        result = run_features(SupportBundle(), mock_config(tmp_path), builder=resolve_support_builder())
        assert result.success
        assert result.scenarios == 0


class TestExecuteRun:
    """Test the full run pipeline"""

    def test_user_support_and_environment(self, tmp_path, monkeypatch):
        """Test user hooks and steps compose with the builtin ones"""
        monkeypatch.delenv("BDUI_TEST_FLAG", raising=False)
        write(tmp_path / "pyproject.toml", "[project]\nname = 'shop'\n")
        write(tmp_path / "bdui.config.yaml", """
            base_url: http://localhost:3000
            driver:
              kind: mock
            environment:
              BDUI_TEST_FLAG: "on"
        """)
        write(tmp_path / "bdui" / "steps" / "shop.py", USER_STEPS)
        write(tmp_path / "features" / "shop.feature", USER_FEATURE)

        result = execute_run(cwd=tmp_path, formats=["null"])

        assert result.success, result.run
        assert result.run.scenarios == 1
        assert [path.name for path in result.step_files] == ["shop.py"]
        assert result.server_url is None
        assert "BDUI_TEST_FLAG" not in os.environ

    def test_invalid_config_fails_before_running(self, tmp_path):
        """Test configuration errors propagate"""
        write(tmp_path / "pyproject.toml", "[project]\nname = 'shop'\n")
        write(tmp_path / "bdui.config.yaml", "driver:\n  kind: selenium\n")

        with pytest.raises(ConfigValidationError):
            execute_run(cwd=tmp_path)

    def test_invalid_environment(self, tmp_path):
        """Test invalid environment names fail the run"""
        write(tmp_path / "pyproject.toml", "[project]\nname = 'shop'\n")
        write(tmp_path / "bdui.config.yaml", "environment:\n  BAD-NAME: x\n")

        with pytest.raises(EnvironmentVariableError):
            execute_run(cwd=tmp_path)
