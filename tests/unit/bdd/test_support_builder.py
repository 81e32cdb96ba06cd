import textwrap

import pytest
from behave.matchers import ParseMatcher
from behave.step_registry import registry as behave_registry
from unittest.mock import patch

from behavior_driven_ui.bdd.bundle import ParameterType, SupportBundle
from behavior_driven_ui.bdd.support_builder import (
    STEP_REGISTRY_LOCATIONS,
    SupportBuilder,
    _locate,
    expand_braces,
    expand_globs,
    resolve_feature_files,
    resolve_step_files,
    resolve_support_builder,
)
from behavior_driven_ui.core.exceptions import ConfigFileLoadError, ExtensionPointUnavailableError


@pytest.fixture
def builder():
    return resolve_support_builder(refresh=True)


def write(path, source):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source))
    return path


class TestResolveSupportBuilder:
    """Test locating behave's registries"""

    def test_finds_installed_registries(self, builder):
        """Test the global step and type registries are found"""
        assert builder.step_registry is behave_registry
        assert builder.type_registry is ParseMatcher.TYPE_REGISTRY

    def test_cached(self, builder):
        """Test the builder is resolved once"""
        assert resolve_support_builder() is builder

    def test_unavailable_extension_point(self):
        """Test a missing registry names every location tried"""
        with pytest.raises(ExtensionPointUnavailableError) as exc_info:
            _locate("step registry", (("behave.nowhere", "registry"), ("behave.runner", "missing")), lambda c: True)

        assert exc_info.value.tried == ["behave.nowhere.registry", "behave.runner.missing"]

    def test_rejects_wrong_shape(self):
        """Test a candidate that does not look like a registry is skipped"""
        with pytest.raises(ExtensionPointUnavailableError):
            _locate("step registry", STEP_REGISTRY_LOCATIONS, lambda candidate: False)


class TestRegistries:
    """Test temporary registry changes"""

    def test_isolated_steps_restored(self, builder):
        """Test the global step table is restored after isolation"""
        before = builder.step_registry.steps
        with builder.isolated_steps() as steps:
            assert builder.step_registry.steps is steps
            assert steps["given"] == []
        assert builder.step_registry.steps is before

    def test_parameter_types_installed_and_removed(self, builder):
        """Test parameter types are visible only inside the block"""
        types = {"Shout": ParameterType("Shout", str.upper, "test")}
        with builder.parameter_types_installed(types):
            assert builder.type_registry["Shout"] is str.upper
        assert "Shout" not in builder.type_registry

    def test_no_override(self, builder):
        """Test override=False keeps an existing converter"""
        with builder.parameter_types_installed({"Shout": ParameterType("Shout", str.upper)}):
            with builder.parameter_types_installed({"Shout": ParameterType("Shout", str.lower)}, override=False):
                assert builder.type_registry["Shout"] is str.upper

    def test_make_step_registry(self, builder):
        """Test a private registry holds exactly the bundle's steps"""
        bundle = SupportBundle()
        with builder.isolated_steps():
            builder.step_registry.make_decorator("given")("a cart")(lambda context: None)
            bundle.step_definitions["given"] = list(builder.step_registry.steps["given"])

        registry = builder.make_step_registry(bundle)

        assert registry is not builder.step_registry
        assert [m.pattern for m in registry.steps["given"]] == ["a cart"]
        assert registry.steps["when"] == []


class TestLoadUserBundle:
    """Test harvesting user support files"""

    def test_steps_hooks_and_attributes(self, builder, tmp_path):
        """Test everything a support file registers ends up in the bundle"""
        step_file = write(tmp_path / "steps" / "cart.py", """
            from behavior_driven_ui import BehaviorDrivenWorld


            class ShopWorld(BehaviorDrivenWorld):
                pass


            world_constructor = ShopWorld
            default_timeout = 12000


            def parallel_can_assign(scenario, running):
                return not running


            def before_scenario(context, scenario):
                pass


            def after_all(context):
                pass


            @given('a cart with {count:d} items')
            def step_cart(context, count):
                context.count = count


            @then('the cart is empty')
            def step_empty(context):
                pass
        """)
        global_steps_before = {k: list(v) for k, v in builder.step_registry.steps.items()}

        bundle = builder.load_user_bundle([step_file])

        assert bundle.step_signatures() == [("given", "a cart with {count:d} items"), ("then", "the cart is empty")]
        assert [hook.__name__ for hook in bundle.hooks["before_scenario"]] == ["before_scenario"]
        assert [hook.__name__ for hook in bundle.hooks["after_all"]] == ["after_all"]
        assert bundle.world_constructor.__name__ == "ShopWorld"
        assert bundle.custom_world_provided
        assert bundle.default_timeout == 12000
        assert bundle.parallel_can_assign("scenario", []) is True
        assert bundle.coordinates.paths == [str(step_file)]
        assert bundle.coordinates.loaders == ["exec_file"]
        assert {k: list(v) for k, v in builder.step_registry.steps.items()} == global_steps_before

    def test_imported_hooks_ignored(self, builder, tmp_path):
        """Test hook names imported from elsewhere are not treated as user hooks"""
        step_file = write(tmp_path / "steps" / "reexport.py", """
            from behavior_driven_ui.bdd.steps import before_scenario
        """)

        bundle = builder.load_user_bundle([step_file])

        assert bundle.hooks["before_scenario"] == []
        assert not bundle.custom_world_provided

    def test_registered_types_harvested(self, builder, tmp_path):
        """Test register_type calls become bundle parameter types"""
        step_file = write(tmp_path / "steps" / "types.py", """
            from behave import register_type


            def parse_money(text):
                return int(text.strip("$"))


            parse_money.pattern = r"\\$\\d+"
            register_type(Money=parse_money)


            @when('I pay {amount:Money}')
            def step_pay(context, amount):
                context.amount = amount
        """)

        bundle = builder.load_user_bundle([step_file])

        assert set(bundle.parameter_types) == {"Money"}
        assert bundle.parameter_types["Money"].source == str(step_file)
        assert "Money" not in builder.type_registry

    def test_base_types_usable_but_not_reported(self, builder, tmp_path):
        """Test base types are visible while loading but excluded from the user bundle"""
        step_file = write(tmp_path / "steps" / "upper.py", """
            @then('I see {words:Shout}')
            def step_see(context, words):
                pass
        """)
        base = {"Shout": ParameterType("Shout", str.upper, "builtin")}

        bundle = builder.load_user_bundle([step_file], base_types=base)

        assert bundle.parameter_types == {}
        assert bundle.step_count() == 1

    def test_failing_support_file(self, builder, tmp_path):
        """Test an exception in a support file is reported with its path"""
        step_file = write(tmp_path / "steps" / "broken.py", """
            raise ImportError("no module named shop")
        """)

        with pytest.raises(ConfigFileLoadError) as exc_info:
            builder.load_user_bundle([step_file])

        assert exc_info.value.file_path == str(step_file)
        assert isinstance(exc_info.value.cause, ImportError)

    @patch("behavior_driven_ui.bdd.support_builder.use_default_step_matcher")
    def test_step_matcher_reset(self, mock_reset, builder, tmp_path):
        """Test the default step matcher is restored after every file"""
        first = write(tmp_path / "steps" / "a.py", "x = 1\n")
        second = write(tmp_path / "steps" / "b.py", "y = 2\n")

        builder.load_user_bundle([first, second])

        assert mock_reset.call_count == 2


class TestGlobs:
    """Test file pattern expansion"""

    def test_expand_braces(self):
        """Test brace alternatives, nested and repeated"""
        assert expand_braces("steps/*.py") == ["steps/*.py"]
        assert expand_braces("{a,b}/*.{py,pyw}") == ["a/*.py", "a/*.pyw", "b/*.py", "b/*.pyw"]

    def test_expand_globs_unique_and_filtered(self, tmp_path):
        """Test matches are de-duplicated, filtered and ordered"""
        write(tmp_path / "features" / "cart.feature", "Feature: Cart\n")
        write(tmp_path / "features" / "nested" / "login.feature", "Feature: Login\n")
        write(tmp_path / "features" / "notes.txt", "notes\n")

        found = expand_globs(tmp_path, ["features/**/*", "features/*.feature"], (".feature",))

        assert [path.name for path in found] == ["cart.feature", "login.feature"]

    def test_resolvers(self, tmp_path):
        """Test step and feature resolvers pick their suffixes"""
        write(tmp_path / "bdui" / "steps" / "cart.py", "")
        write(tmp_path / "bdui" / "steps" / "README.md", "")
        write(tmp_path / "features" / "cart.feature", "Feature: Cart\n")

        assert [p.name for p in resolve_step_files(tmp_path, ["bdui/steps/**/*"])] == ["cart.py"]
        assert [p.name for p in resolve_feature_files(tmp_path, ["features/**/*.feature"])] == ["cart.feature"]

    def test_absolute_patterns(self, tmp_path):
        """Test absolute patterns are used as-is"""
        step = write(tmp_path / "shared" / "common.py", "")
        assert resolve_step_files("/unused", [str(tmp_path / "shared" / "*.py")]) == [step.resolve()]
