"""
Example: Basic usage of genaikit.

This example demonstrates:
- One-shot generation with GenerativeModel
- A multi-turn chat with streaming
- Structured output with generate_object
- Backing up and restoring a chat session
"""

import asyncio
import json
import logging

from pydantic import BaseModel

from genaikit import ChatSession, GenAIClient
from genaikit.types import ChatSessionBackUpData, GenerationConfig


class City(BaseModel):
    name: str
    country: str
    population: int


async def main():
    logging.basicConfig(level=logging.INFO)

    # Reads GOOGLE_API_KEY from the environment
    async with GenAIClient({"model": "gemini-1.5-flash"}) as client:
        model = client.generative_model(generation_config=GenerationConfig(temperature=0.2))

        response = await model.generate_content("Write a haiku about the sea.")
        print(response.text)

        city = await model.generate_object("Describe the largest city in Japan.", City)
        print(f"{city.name}, {city.country}: {city.population:,}")

        chat = client.start_chat(system_instruction="Answer in one sentence.")
        await chat.generate_content("My name is Ada.")

        async for chunk in chat.stream_content("What is my name?"):
            print(chunk.text or "", end="", flush=True)
        print()

        saved = json.dumps(chat.create_backup().to_dict())
        restored: ChatSession = client.restore_chat(json.loads(saved))
        response = await restored.generate_content("Spell it backwards.")
        print(response.text)
        print(f"History length: {len(restored.history)}")

        backup = ChatSessionBackUpData.from_json(saved)
        print(f"Backup model: {backup.model}")


if __name__ == "__main__":
    asyncio.run(main())
