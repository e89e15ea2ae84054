"""
Crisp Interview Engine - Terminal Host

Runs one live interview session in the terminal: renders the chat
transcript, forwards what the candidate types to the orchestrator and
owns the once-a-second timer of the session.
"""

import asyncio
import sys
import argparse
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text
from loguru import logger

from config import config
from src.orchestrator.orchestrator import InterviewOrchestrator
from src.orchestrator.schema import ChatMessage, QuestionStatus, SessionStatus
from src.orchestrator.state_manager import SessionStore, StateManager
from src.orchestrator.text_parser import extract_contact_details
from src.orchestrator.timer import TimerDriver
from src.clients.interview_gateway import LLMInterviewGateway
from src.clients.resume_parser import build_resume_metadata
from src.utils.error_handlers import InterviewError, timeout_handler

console = Console()

ROLE_STYLES = {
    "assistant": ("🤖 Crisp", "bright_blue"),
    "user": ("👤 You", "bright_green"),
    "system": ("⚙️  System", "yellow"),
}


class InterviewApp:
    """Terminal application hosting a live interview session"""

    def __init__(self):
        self.console = console
        self.store = SessionStore()
        self.state_manager = StateManager(self.store, config.app.state_dir)
        self.gateway = LLMInterviewGateway()
        self.orchestrator = InterviewOrchestrator(self.store, self.gateway)

        # Every command gets a deadline; the engine itself has none
        self.handle_chat_turn = timeout_handler(
            config.app.command_timeout, "The interview service did not answer in time"
        )(self.orchestrator.handle_chat_turn)

        self._rendered = 0

    async def run(self, args):
        """Main application flow"""
        self._show_welcome()

        if args.cleanup_sessions:
            removed = self.state_manager.cleanup_old_sessions()
            self.console.print(f"🧹 {removed} old session files removed.")
            return

        if args.list_sessions:
            self._list_sessions()
            return

        try:
            session_id = args.session or await self._check_for_recoverable_sessions()

            if session_id:
                session = self.state_manager.load_session(session_id)
                if not session:
                    self.console.print(f"[red]❌ Session not found: {session_id}[/red]")
                    return
                self.console.print(f"\n✅ Session '{session_id}' loaded, welcome back!")
            else:
                if not args.skip_checks and not await self._check_system():
                    return
                session = self._new_session(args)

            await self._run_interview(session.id)
            self._show_results(session.id)

        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Interrupted by the user.[/yellow]")
        finally:
            await self.gateway.close()
            logger.info("Application finished.")

    def _show_welcome(self):
        panel = Panel(
            """🎙️  [bold cyan]Crisp Interview Assistant[/bold cyan]

Six timed questions, easy to hard, graded as you go.
Type your answer and press Enter. Commands: [bold]/pause[/bold], [bold]/resume <file>[/bold], [bold]/quit[/bold]

[dim]Easy 20s | Medium 60s | Hard 120s[/dim]""",
            title="Welcome",
            border_style="cyan"
        )
        self.console.print(panel)

    async def _check_system(self) -> bool:
        """Check configuration and the LLM service"""
        self.console.print("\n[bold]🔍 System Checks[/bold]")

        all_ok = config.validate()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console
        ) as progress:
            task = progress.add_task("[cyan]Checking the LLM service...", total=1)
            if all_ok and await self.gateway.client.test_connection():
                progress.update(task, completed=1, description=f"[green]✅ {config.llm.model} ready")
            else:
                progress.update(task, completed=1, description="[red]❌ LLM service not reachable")
                all_ok = False

        if not all_ok:
            self.console.print("\n[red]The interview service is not ready. Check that:[/red]")
            self.console.print("1. LLM_API_KEY is set ([cyan].env[/cyan] or environment)")
            self.console.print(f"2. The model [cyan]{config.llm.model}[/cyan] is available on your account")

        return all_ok

    def _new_session(self, args):
        """Create a session from the command line arguments and an optional resume"""
        resume = None
        if args.resume_file:
            try:
                resume = build_resume_metadata(args.resume_file)
            except (InterviewError, FileNotFoundError) as e:
                self.console.print(f"[red]❌ {e}[/red] You can still give your details in the chat.")

        found = extract_contact_details(resume.parsed_text) if resume and resume.parsed_text else {}
        return self.orchestrator.open_session(
            name=args.name or found.get("name"),
            email=args.email or found.get("email"),
            phone=args.phone or found.get("phone"),
            role=args.role,
            resume=resume,
        )

    async def _run_interview(self, session_id: str):
        """Chat loop of a live session"""
        self.console.print("\n[bold green]🎬 Interview session open![/bold green]")
        self._rendered = 0
        self._render_new_messages(session_id)

        timer = TimerDriver(self.orchestrator, session_id, on_tick=self._on_tick)
        render_task = asyncio.create_task(self._render_loop(session_id))
        timer.start()
        self.state_manager.start_auto_save(config.app.auto_save_interval)

        try:
            await self._command(session_id, "")

            while self.store.get_session(session_id).status != SessionStatus.COMPLETED:
                # The answer belongs to the question on screen, even if the timer resolves it meanwhile
                shown = self.store.current_question(session_id)
                shown_id = shown.id if shown and shown.status == QuestionStatus.ACTIVE else None
                text = await asyncio.to_thread(Prompt.ask, "[bold]>[/bold]")
                command = text.strip()

                if command == "/quit":
                    break
                if command == "/pause":
                    try:
                        await self.orchestrator.pause_interview(session_id)
                    except InterviewError as e:
                        self.console.print(f"[yellow]{e}[/yellow]")
                    continue
                if command.startswith("/resume "):
                    await self._attach_resume(session_id, command[len("/resume "):].strip())
                    continue

                await self._command(session_id, text, question_id=shown_id)

        finally:
            await timer.stop()
            render_task.cancel()
            try:
                await render_task
            except asyncio.CancelledError:
                pass
            self.state_manager.stop_auto_save()
            self.state_manager.save_session(session_id)
            self._render_new_messages(session_id)
            if self.store.get_session(session_id).status != SessionStatus.COMPLETED:
                self.console.print(
                    f"\n[yellow]⏸️ Session saved. "
                    f"To continue: python main.py --session {session_id}[/yellow]"
                )

    async def _command(self, session_id: str, text: str, resume=None, question_id: Optional[str] = None):
        try:
            await self.handle_chat_turn(session_id, text, resume, question_id)
        except InterviewError as e:
            logger.error(f"Command failed: {e}")
        finally:
            self.state_manager.save_session(session_id)
            self._render_new_messages(session_id)

    async def _attach_resume(self, session_id: str, path: str):
        try:
            resume = build_resume_metadata(path)
        except (InterviewError, FileNotFoundError) as e:
            self.console.print(f"[red]❌ {e}[/red]")
            return
        await self._command(session_id, "", resume)

    async def _render_loop(self, session_id: str):
        """Show messages the timer produced while the candidate was typing"""
        while True:
            await asyncio.sleep(0.5)
            self._render_new_messages(session_id)

    def _render_new_messages(self, session_id: str):
        thread = self.store.get_thread(session_id)
        for message in thread[self._rendered:]:
            self._render_message(message)
        self._rendered = len(thread)

    def _render_message(self, message: ChatMessage):
        label, style = ROLE_STYLES[message.role]
        kind = message.meta.get("type")
        if kind == "question":
            difficulty = message.meta.get("difficulty", "")
            self.console.print(Panel(Text(message.content, style=style), title=f"{label} • {difficulty}", border_style=style))
        elif kind == "evaluation":
            self.console.print(Text(f"{label} (score {message.meta.get('score')}): {message.content}", style="cyan"))
        elif kind == "summary":
            self.console.print(Panel(Text(message.content, style="bold green"), title="✅ Interview Summary", border_style="green"))
        elif message.role == "user":
            self.console.print(Text(f"{label}: {message.content or '[no answer]'}", style=style))
        else:
            self.console.print(Text(f"{label}: {message.content}", style=style))

    def _on_tick(self, remaining: int):
        if remaining in (10, 5, 3, 2, 1) or (remaining > 0 and remaining % 30 == 0):
            self.console.print(Text(f"⏱️  {remaining}s left", style="dim"))
        elif remaining == 0:
            self.console.print(Text("⏰ Time is up!", style="bold red"))

    async def _check_for_recoverable_sessions(self) -> Optional[str]:
        """Offer to continue an unfinished interview"""
        recoverable = self.state_manager.get_recovery_info()
        if not recoverable:
            return None

        self.console.print("\n[bold yellow]📂 Unfinished Interviews[/bold yellow]")
        table = self._sessions_table(recoverable)
        self.console.print(table)

        choices = {"0": None}
        for i, info in enumerate(recoverable, 1):
            choices[str(i)] = info['session_id']

        choice = Prompt.ask(
            "\nYour choice (0: new interview)",
            choices=list(choices.keys()),
            default="0"
        )
        return choices[choice]

    def _list_sessions(self):
        recoverable = self.state_manager.get_recovery_info()
        if not recoverable:
            self.console.print("No unfinished interviews.")
            return
        self.console.print(self._sessions_table(recoverable))

    def _sessions_table(self, sessions) -> Table:
        table = Table(title="Resumable Sessions")
        table.add_column("No", style="cyan")
        table.add_column("Candidate", style="white")
        table.add_column("Status", style="white")
        table.add_column("Questions", style="white")
        table.add_column("Session ID", style="dim")
        for i, info in enumerate(sessions, 1):
            table.add_row(
                str(i),
                info['candidate_name'],
                info['status'],
                f"{info['questions_asked']}/{config.interview.total_questions}",
                info['session_id'],
            )
        return table

    def _show_results(self, session_id: str):
        """Show the interview results"""
        session = self.store.get_session(session_id)
        if session.status != SessionStatus.COMPLETED:
            return

        candidate = self.store.get_candidate(session.candidate_id)
        self.console.print("\n[bold]📊 Interview Results[/bold]")

        table = Table()
        table.add_column("#", style="cyan")
        table.add_column("Difficulty")
        table.add_column("Status")
        table.add_column("Score", justify="right")
        for question in self.store.session_questions(session_id):
            score = str(question.evaluation.score) if question.evaluation else "-"
            status_style = "green" if question.status == QuestionStatus.ANSWERED else "yellow"
            table.add_row(
                str(question.order + 1),
                question.difficulty.value,
                f"[{status_style}]{question.status.value}[/{status_style}]",
                score,
            )
        self.console.print(table)
        self.console.print(f"🏁 Final score: [bold cyan]{candidate.score}[/bold cyan] / 100")


def main():
    """Program entry point"""
    parser = argparse.ArgumentParser(
        description="Crisp - timed, AI evaluated technical interview",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # New interview
  python main.py --resume-file cv.pdf             # Read contact details from a resume
  python main.py --session 3f2a...                # Continue a saved interview
  python main.py --list-sessions                  # Show unfinished interviews
  python main.py --cleanup-sessions               # Remove old completed sessions
        """
    )

    parser.add_argument('--resume-file', type=str, help='PDF or DOCX resume of the candidate')
    parser.add_argument('--name', type=str, help='Candidate name')
    parser.add_argument('--email', type=str, help='Candidate email')
    parser.add_argument('--phone', type=str, help='Candidate phone')
    parser.add_argument('--role', type=str, help=f'Role applied for (default: {config.interview.default_role})')
    parser.add_argument('--session', type=str, metavar='SESSION_ID', help='Continue the given session')
    parser.add_argument('--list-sessions', action='store_true', help='List unfinished sessions')
    parser.add_argument('--cleanup-sessions', action='store_true', help='Remove completed session files older than 7 days')
    parser.add_argument('--skip-checks', action='store_true', help='Skip the LLM service check')

    args = parser.parse_args()

    app = InterviewApp()

    try:
        asyncio.run(app.run(args))
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Program closed.[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red]Critical error: {str(e)}[/red]")
        logger.exception("Critical error")
        sys.exit(1)


if __name__ == "__main__":
    main()
