"""
Example: Function calling with genaikit.

This example demonstrates:
- Defining tools with the @define_tool decorator
- Dispatching several declarations with GenericFunctionTool
- Controlling the function calling loop with FunctionCallingBehaviour
"""

import asyncio
import json

from genaikit import GenAIClient, GenericFunctionTool, define_tool
from genaikit.types import FunctionCallingBehaviour, FunctionDeclaration


@define_tool(description="Get the current weather for a location")
def get_weather(city: str, country: str = "US") -> str:
    """Get weather information.

    Args:
        city: The city name.
        country: The country code.
    """
    weather_data = {
        "Tokyo": "Sunny, 22°C",
        "London": "Cloudy, 15°C",
        "Paris": "Partly cloudy, 20°C",
    }
    return f"Weather in {city}, {country}: {weather_data.get(city, 'Unknown')}"


async def lookup_population(arguments: str) -> str:
    city = json.loads(arguments).get("city", "")
    populations = {"Tokyo": 14_000_000, "London": 8_900_000, "Paris": 2_100_000}
    return json.dumps({"city": city, "population": populations.get(city)})


population_tool = GenericFunctionTool(
    [
        FunctionDeclaration(
            name="lookup_population",
            description="Look up the population of a city",
            parameters={
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        )
    ],
    {"lookup_population": lookup_population},
)


async def main():
    async with GenAIClient() as client:
        model = client.generative_model(
            "gemini-1.5-flash",
            tools=[get_weather, population_tool],
            function_calling_behaviour=FunctionCallingBehaviour(
                auto_handle_bad_function_calls=True,
                max_function_call_rounds=5,
            ),
        )

        response = await model.generate_content(
            "What's the weather in Tokyo, and how many people live there?"
        )
        print(response.text)

        # Return the model's function call instead of executing it
        model.function_calling_behaviour = FunctionCallingBehaviour(auto_call_function=False)
        response = await model.generate_content("What's the weather in Paris?")
        if response.function_call:
            print(f"Model wants {response.function_call.name}({response.function_call.args})")


if __name__ == "__main__":
    asyncio.run(main())
