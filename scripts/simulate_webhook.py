import argparse
import asyncio
import xml.etree.ElementTree as ET
from tooltrack.config import get_settings
from tooltrack.database import AsyncSessionLocal, get_session_factory, init_models
from tooltrack.services.conversation_service import ConversationService
from tooltrack.services.intent_service import IntentOracle
from tooltrack.utils.logging import setup_logging

def reply_text(response_xml: str) -> str:
    message = ET.fromstring(response_xml).find("Message")
    return message.text if message is not None else response_xml

async def simulate_chat(phone: str, to: str):
    print("--- Tool Tracking Bot Simulator ---")
    print("Type your message and press Enter. Type 'quit' to exit.")
    print(f"Simulating {phone} texting {to}")

    await init_models()
    oracle = IntentOracle()

    while True:
        user_input = input(f"You ({phone}): ")
        if user_input.lower() in ["quit", "exit"]:
            break

        # One session per message, like the webhook
        async with AsyncSessionLocal() as db:
            service = ConversationService(db, oracle, get_session_factory())
            response_xml = await service.handle_message(from_number=phone, to_number=to, body=user_input)
        print(f"Bot: {reply_text(response_xml)}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chat with the bot without Twilio")
    parser.add_argument("--phone", default="+15550000001")
    parser.add_argument("--to", default=get_settings().TWILIO_PHONE_NUMBER,
                        help="Number the message is sent to, a crew's own number or the shared one")
    args = parser.parse_args()

    setup_logging()
    try:
        asyncio.run(simulate_chat(args.phone, args.to))
    except KeyboardInterrupt:
        print("\nExiting simulator.")
