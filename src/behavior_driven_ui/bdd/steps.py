"""
Builtin step library.

Every step takes behave's context explicitly and works on context.world,
a BehaviorDrivenWorld (or a user subclass of it).
"""
from typing import Dict, List, Optional
from urllib.parse import urljoin
import json
import logging

import parse

from ..core.driver import TrackingDriver
from ..core.exceptions import WorldError
from ..core.world import MISSING, World
from .bundle import ParameterType, SupportBundle
from .support_builder import SupportBuilder, resolve_support_builder

logger = logging.getLogger(__name__)

BUILTIN_SOURCE = "behavior_driven_ui.bdd.steps"


@parse.with_pattern(r'[^"]*')
def parse_csv(text: str) -> List[str]:
    """'a, b,c' -> ['a', 'b', 'c']"""
    return [item.strip() for item in text.split(",") if item.strip()]


BUILTIN_PARAMETER_TYPES: Dict[str, ParameterType] = {
    "Csv": ParameterType("Csv", parse_csv, source=BUILTIN_SOURCE),
}


class BehaviorDrivenWorld(World):
    """World used by the builtin steps; subclass it to customise the world"""

    def ensure_tracking_driver(self) -> TrackingDriver:
        driver = self.ensure_driver()
        if not isinstance(driver, TrackingDriver):
            raise WorldError(
                f"Builtin steps need a navigation-tracking driver, got {driver.__class__.__name__}"
            )
        return driver


def _world(context) -> BehaviorDrivenWorld:
    world = getattr(context, "world", None)
    if world is None:
        raise WorldError("No world on the behave context; was the scenario started by the bdui runner?")
    return world


def _table_cells(table) -> List[str]:
    """Every non-empty cell of a behave table, headings included, trimmed"""
    rows = [table.headings] + [row.cells for row in table.rows]
    return [cell.strip() for row in rows for cell in row if cell.strip()]


# Hooks

def before_scenario(context, scenario):
    _world(context).before_scenario()


def after_scenario(context, scenario):
    world = _world(context)
    try:
        world.after_scenario()
    finally:
        world.destroy()


def _register_world_steps(given, when, then):

    @given('a fresh test world')
    def step_fresh_world(context):
        world = _world(context)
        world.clear_data()
        world.ensure_tracking_driver().reset_history()

    @given('a world configured with base url "{url}"')
    def step_world_with_base_url(context, url):
        world = _world(context)
        world.config.base_url = url
        world.ensure_tracking_driver().reset_history()
        world.before_scenario()

    @when('I trigger the scenario setup')
    def step_trigger_setup(context):
        world = _world(context)
        world.ensure_tracking_driver().reset_history()
        world.before_scenario()


def _register_data_steps(given, when, then):

    @when('I store "{value}" as "{key}"')
    def step_store_data(context, value, key):
        _world(context).set_data(key, value)

    @then('the data for "{key}" should be "{expected}"')
    def step_data_equals(context, key, expected):
        actual = _world(context).get_data(key)
        assert actual == expected, (
            f'Expected stored data for "{key}" to equal "{expected}", received {actual!r}'
        )

    @then('the data for "{key}" should be absent')
    def step_data_absent(context, key):
        actual = _world(context).get_data(key)
        assert actual is MISSING, f'Expected no stored data for "{key}", but received {actual!r}'


def _register_navigation_steps(given, when, then):

    @when('I navigate to "{url}"')
    def step_navigate(context, url):
        world = _world(context)
        target = urljoin(world.config.base_url, url) if world.config.base_url else url
        world.ensure_tracking_driver().goto(target)

    @when('I reload the page')
    def step_reload(context):
        _world(context).ensure_tracking_driver().reload()

    @when('I go back')
    def step_back(context):
        _world(context).ensure_tracking_driver().back()

    @when('I go forward')
    def step_forward(context):
        _world(context).ensure_tracking_driver().forward()

    @then('the driver should have navigated to "{url}"')
    def step_navigated_to(context, url):
        visited = _world(context).ensure_tracking_driver().visited_urls
        assert url in visited, f'Expected navigation history {visited} to include "{url}"'


def _register_form_steps(given, when, then):

    @when('I fill "{selector}" with "{value}"')
    def step_fill(context, selector, value):
        _world(context).ensure_tracking_driver().fill(selector, value)

    @when('I type "{text}" into "{selector}"')
    def step_type(context, text, selector):
        _world(context).ensure_tracking_driver().type(selector, text)

    @when('I click "{selector}"')
    def step_click(context, selector):
        _world(context).ensure_tracking_driver().click(selector)

    @when('I select "{option}" from "{selector}"')
    def step_select(context, option, selector):
        _world(context).ensure_tracking_driver().select(selector, option)

    @when('I select the following options from "{selector}":')
    def step_select_table(context, selector):
        if context.table is None:
            raise ValueError("Step needs a table listing the options to select")
        _world(context).ensure_tracking_driver().select(selector, _table_cells(context.table))

    @when('I select the options "{options:Csv}" from "{selector}"')
    def step_select_csv(context, options, selector):
        _world(context).ensure_tracking_driver().select(selector, options)

    @when('I wait for "{selector}"')
    def step_wait_for(context, selector):
        _world(context).ensure_tracking_driver().wait_for(selector)


def _register_assertion_steps(given, when, then):

    @then('the value of "{selector}" should be "{expected}"')
    def step_value_is(context, selector, expected):
        _world(context).ensure_tracking_driver().expect(selector, f"to have value {json.dumps(expected)}")

    @then('the values of "{selector}" should be:')
    def step_values_are(context, selector):
        if context.table is None:
            raise ValueError("Step needs a table listing the expected values")
        expected = _table_cells(context.table)
        actual = [
            item.strip()
            for item in _world(context).ensure_tracking_driver().get_value(selector).split(",")
            if item.strip()
        ]
        assert actual == expected, (
            f'Expected selected values for "{selector}" to equal {expected}, received {actual}'
        )

    @then('the text of "{selector}" should be "{expected}"')
    def step_text_is(context, selector, expected):
        _world(context).ensure_tracking_driver().expect(selector, f"to have text {json.dumps(expected)}")

    @then('"{selector}" should contain text "{expected}"')
    def step_contains_text(context, selector, expected):
        _world(context).ensure_tracking_driver().expect(selector, f"to contain text {json.dumps(expected)}")

    @then('"{selector}" should be visible')
    def step_visible(context, selector):
        _world(context).ensure_tracking_driver().expect(selector, "to be visible")

    @then('"{selector}" should be hidden')
    def step_hidden(context, selector):
        _world(context).ensure_tracking_driver().expect(selector, "to be hidden")

    @then('"{selector}" should match "{condition}"')
    def step_matches_condition(context, selector, condition):
        _world(context).ensure_tracking_driver().expect(selector, condition)


def _register_viewport_steps(given, when, then):

    @when('I set the viewport to {width:d} by {height:d}')
    def step_set_viewport(context, width, height):
        _world(context).ensure_tracking_driver().set_viewport(width, height)

    @when('I use the "{name}" breakpoint')
    def step_use_breakpoint(context, name):
        world = _world(context)
        breakpoints = world.config.breakpoints
        if name not in breakpoints:
            raise WorldError(f"Unknown breakpoint {name!r}. Available: {', '.join(sorted(breakpoints))}")
        world.ensure_tracking_driver().set_viewport(breakpoints[name], world.config.default_height)

    @then('the viewport size should be {width:d} by {height:d}')
    def step_viewport_is(context, width, height):
        viewport = _world(context).ensure_tracking_driver().get_viewport()
        actual = viewport.as_dict()
        assert actual == {"width": width, "height": height}, (
            f"Expected viewport {width}x{height}, received {actual['width']}x{actual['height']}"
        )


def _register_screenshot_steps(given, when, then):

    @when('I take a screenshot "{path}"')
    def step_screenshot(context, path):
        _world(context).ensure_tracking_driver().screenshot(path)

    @when('I take a full page screenshot "{path}"')
    def step_full_page_screenshot(context, path):
        _world(context).ensure_tracking_driver().full_page_screenshot(path)


STEP_GROUPS = (
    _register_world_steps,
    _register_data_steps,
    _register_navigation_steps,
    _register_form_steps,
    _register_assertion_steps,
    _register_viewport_steps,
    _register_screenshot_steps,
)


def build_builtin_bundle(builder: Optional[SupportBuilder] = None) -> SupportBundle:
    """
    Build the bundle holding the builtin hooks, steps and world.

    Steps are registered with behave's own decorators on a private step
    registry, with the builtin parameter types visible while their
    patterns compile.
    """
    builder = builder or resolve_support_builder()
    registry = type(builder.step_registry)()
    decorators = [registry.make_decorator(keyword) for keyword in ("given", "when", "then")]

    with builder.parameter_types_installed(BUILTIN_PARAMETER_TYPES, override=False):
        for register in STEP_GROUPS:
            register(*decorators)

    bundle = SupportBundle(
        step_definitions={keyword: list(matchers) for keyword, matchers in registry.steps.items()},
        parameter_types=dict(BUILTIN_PARAMETER_TYPES),
        world_constructor=BehaviorDrivenWorld,
        custom_world_provided=False,
    )
    bundle.add_hook("before_scenario", before_scenario)
    bundle.add_hook("after_scenario", after_scenario)
    bundle.coordinates.modules.append(BUILTIN_SOURCE)
    bundle.coordinates.loaders.append("builtin")

    logger.debug(f"Built builtin bundle with {bundle.step_count()} steps")
    return bundle
