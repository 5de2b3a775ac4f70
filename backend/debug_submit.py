import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from services.config import GatewayConfig
from services.gateway import RemoteGateway
from services.records import audio_suffix


async def main(path: str) -> None:
    config = GatewayConfig.from_env()
    gateway = RemoteGateway(config)
    audio = Path(path)
    mime_type = "audio/wav" if audio_suffix("audio/wav") == audio.suffix else "audio/webm"
    try:
        result = await gateway.submit_dream(audio.read_bytes(), mime_type=mime_type, filename=audio.name)
        print("Transcript:", result.transcript.text)
        print("Sora prompt:", result.prompt.sora_prompt)
        print("Narrative beats:", len(result.prompt.narrative_beats))
        print("Video:", result.video)
        await gateway.wait_background()
    finally:
        await gateway.aclose()


if __name__ == "__main__":
    load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
    if len(sys.argv) != 2:
        sys.exit("usage: python debug_submit.py <recording.webm|recording.wav>")
    asyncio.run(main(sys.argv[1]))
