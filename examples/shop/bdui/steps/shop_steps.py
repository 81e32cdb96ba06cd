import os

from behave import then

from behavior_driven_ui import BehaviorDrivenWorld


class ShopWorld(BehaviorDrivenWorld):
    """World with shop-specific helpers"""

    def currency(self):
        return os.environ.get("SHOP_CURRENCY", "USD")


world_constructor = ShopWorld
default_timeout = 10000


def before_scenario(context, scenario):
    context.world.set_data("user", "guest")


@then('the shop currency should be "{currency}"')
def step_currency(context, currency):
    assert context.world.currency() == currency, f"Expected {currency}, got {context.world.currency()}"
