"""Minimal console front end for the chat session."""

import asyncio

from chat_client import create_session


async def main() -> None:
    session = create_session()
    printed = {}

    def on_messages(messages):
        for m in messages:
            if printed.get(m.id) == m.text:
                continue
            prefix = "Error" if m.is_error else m.sender.value
            print(f"[{prefix}] {m.text}")
            printed[m.id] = m.text

    session.subscribe_messages(on_messages)
    session.subscribe_connectivity(lambda old, new: print(f"-- {new.value}"))
    session.start()
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, input)
            if line.strip() in {"/quit", "/exit"}:
                break
            if line.strip() == "/reset":
                session.reset_conversation()
                continue
            session.send_query(line)
    except EOFError:
        pass
    finally:
        session.close()


if __name__ == "__main__":
    asyncio.run(main())
