import logging

from ocp_link import config
from ocp_link.decoder import SettingsDecoder
from ocp_link.frames import FrameReader
from ocp_link.handshake import try_connect
from ocp_link.link import LinkError
from ocp_link.ports import PortCatalog
from ocp_link.utils import format_value


def print_settings(settings):
    for key, value in settings.items():
        print(f"  {key}: {format_value(value)}")


def watch(link, count):
    reader = FrameReader(link)
    decoder = SettingsDecoder()
    received = 0
    while received < count:
        message = reader.read_message(1.0)
        if message is None:
            print("(no data)")
            continue
        received += 1
        settings = decoder.decode(message)
        if settings is None:
            print(f">> undecodable {message.kind.value} message: {message.payload!r}")
        else:
            print(f">> {message.kind.value} message")
            print_settings(settings)


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    print("=== OCP Hardware Check ===")

    ports = PortCatalog.for_platform().list_candidate_ports()
    if not ports:
        print("No candidate serial ports found. Exiting.")
        return
    for i, port in enumerate(ports):
        print(f"[{i}] {port}")

    choice = input("Select port (blank = first): ").strip()
    try:
        port = ports[int(choice)] if choice else ports[0]
    except (ValueError, IndexError):
        print("Invalid selection")
        return

    print(f"Handshaking with {port} (expects '{config.HANDSHAKE_ID}')...")
    link = try_connect(port)
    if link is None:
        print("Handshake failed.")
        return
    print(f"Connected! Device: {link.identity}")

    try:
        while True:
            print("\n--- MENU ---")
            print("[w] Watch 10 messages")
            print("[q] Quit")
            choice = input("Select: ").strip().lower()

            if choice == 'q':
                break
            elif choice == 'w':
                watch(link, 10)
            else:
                print("Unknown command")
    except LinkError as e:
        print(f"Link lost: {e}")
    finally:
        link.close()


if __name__ == "__main__":
    main()
