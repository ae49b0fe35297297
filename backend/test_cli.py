"""终端客户端测试"""
import asyncio

from chat_gateway.client import SessionController
from chat_gateway.client.cli import handle_line, parse_command, render_message


def test_parse_command():
    assert parse_command("hello there") == (None, ["hello there"])
    assert parse_command("/IMAGE a.png 'my pic.jpg'") == ("image", ["a.png", "my pic.jpg"])
    assert parse_command("  /quit ") == ("quit", [])


def test_render_message_marks_attachments():
    text = render_message({"role": "user", "content": "look", "hasImage": True})
    assert "look" in text
    assert "[Image attachment]" in text
    assert "[Audio attachment]" not in text


def test_quit_stops_loop():
    controller = SessionController(http=None)
    assert asyncio.run(handle_line(controller, "/quit", None)) == (False, None)


def test_image_command_adds_attachments(tmp_path):
    paths = []
    for i in range(7):
        path = tmp_path / f"p{i}.png"
        path.write_bytes(b"png")
        paths.append(str(path))

    controller = SessionController(http=None)
    running, _ = asyncio.run(handle_line(controller, "/image " + " ".join(paths), None))
    assert running
    assert len(controller.attachments.images) == 6
    assert controller.attachments.images[0].mime_type == "image/png"
