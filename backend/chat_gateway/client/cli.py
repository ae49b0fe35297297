"""终端聊天客户端 - 基于 SessionController

使用方法：
    chat-gateway-cli                                  # 连接 http://localhost:3000
    chat-gateway-cli --base-url http://host:3000      # 指定网关地址
    chat-gateway-cli --state-file ~/.chat_state.json  # 指定本地状态文件
"""
import argparse
import asyncio
import shlex
from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from ..attachment import Attachment
from .controller import LocalState, SendOutcome, SessionController


class Colors:
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"


HELP_TEXT = """命令:
  /image PATH...   添加图片（最多6张）
  /audio PATH      添加音频
  /doc PATH        添加文档
  /new             开始新会话
  /sessions        列出会话
  /switch ID       切换会话
  /history         重新加载当前会话
  /clear           删除当前会话
  /retry           重发上一次失败的请求
  /quit            退出
其他输入直接作为消息发送"""


def parse_command(line: str) -> Tuple[Optional[str], List[str]]:
    """解析一行输入；不是命令时返回 (None, [原文])"""
    line = line.strip()
    if not line.startswith("/"):
        return None, [line]
    parts = shlex.split(line)
    return parts[0][1:].lower(), parts[1:]


def render_message(message: dict) -> str:
    if message.get("role") == "user":
        marks = []
        if message.get("hasImage"):
            marks.append("[Image attachment]")
        if message.get("hasAudio"):
            marks.append("[Audio attachment]")
        suffix = f" {Colors.DIM}{' '.join(marks)}{Colors.RESET}" if marks else ""
        return f"{Colors.CYAN}you>{Colors.RESET} {message.get('content', '')}{suffix}"
    color = Colors.RED if message.get("error") else Colors.GREEN
    return f"{color}bot>{Colors.RESET} {message.get('content', '')}"


def render_sessions(controller: SessionController) -> str:
    if not controller.sessions:
        return "No chat history yet"
    lines = []
    for session in controller.sessions:
        marker = "*" if session.get("id") == controller.current_session_id else " "
        lines.append(
            f"{marker} {session.get('id')}  {session.get('title')}  "
            f"{Colors.DIM}{session.get('updatedAt')} ({session.get('messageCount')} msgs){Colors.RESET}"
        )
    return "\n".join(lines)


async def handle_line(controller: SessionController, line: str, last_failure: Optional[SendOutcome]):
    """处理一行输入，返回 (是否继续, 最近一次失败的发送)"""
    command, args = parse_command(line)

    if command is None:
        outcome = await controller.send(args[0])
        if outcome is None:
            return True, last_failure
        print(render_message(outcome.placeholder))
        return True, (None if outcome.ok else outcome)

    if command in ("quit", "exit"):
        return False, last_failure
    if command == "help":
        print(HELP_TEXT)
    elif command == "image":
        for path in args:
            if not controller.attachments.add_image(Attachment.from_path(path)):
                print(f"{Colors.YELLOW}最多只能添加6张图片{Colors.RESET}")
                break
    elif command == "audio" and args:
        controller.attachments.audio = Attachment.from_path(args[0])
    elif command == "doc" and args:
        controller.attachments.document = Attachment.from_path(args[0])
    elif command == "new":
        print(f"新会话: {await controller.new_session()}")
    elif command == "sessions":
        await controller.load_sessions()
        print(render_sessions(controller))
    elif command == "switch" and args:
        if await controller.select_session(args[0]):
            for message in controller.messages:
                print(render_message(message))
    elif command == "history":
        await controller.load_history()
        for message in controller.messages:
            print(render_message(message))
    elif command == "clear":
        await controller.clear_session()
        print("Chat history cleared.")
    elif command == "retry":
        if last_failure is None:
            print("没有需要重发的请求")
        else:
            outcome = await controller.resend(last_failure)
            if outcome is not None:
                print(render_message(outcome.placeholder))
                return True, (None if outcome.ok else outcome)
    else:
        print(HELP_TEXT)
    return True, last_failure


async def run_repl(base_url: str, state_file: Optional[Path]):
    async with httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(connect=10.0, read=None, write=60.0, pool=10.0)) as http:
        controller = SessionController(http, LocalState(state_file))
        await controller.load_history()
        await controller.load_sessions()
        print(f"{Colors.DIM}会话 {controller.current_session_id}，输入 /help 查看命令{Colors.RESET}")
        for message in controller.messages:
            print(render_message(message))

        last_failure = None
        running = True
        while running:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if not line.strip():
                continue
            try:
                running, last_failure = await handle_line(controller, line, last_failure)
            except (OSError, ValueError) as e:
                print(f"{Colors.RED}命令执行失败: {e}{Colors.RESET}")


def main():
    parser = argparse.ArgumentParser(
        description="Gemini 聊天网关终端客户端",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_TEXT,
    )
    parser.add_argument("--base-url", type=str, default="http://localhost:3000", help="网关地址")
    parser.add_argument(
        "--state-file",
        type=str,
        default=str(Path.home() / ".chat_gateway" / "state.json"),
        help="本地状态文件（保存当前会话ID）",
    )
    args = parser.parse_args()

    try:
        asyncio.run(run_repl(args.base_url, Path(args.state_file)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
