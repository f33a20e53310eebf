"""Interactive CLI for the expense assistant."""

from assistant.config import AssistantConfig
from assistant.conversation import Speaker, Turn
from assistant.orchestrator import ChatOrchestrator, TurnState
from expenses.store import SqliteExpenseStore


# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"


class CLIApp:
    """Interactive REPL; the transcript lives here, not in the orchestrator."""

    def __init__(self, config: AssistantConfig, orchestrator: ChatOrchestrator | None = None):
        self.config = config
        if orchestrator is None:
            store = SqliteExpenseStore(
                config.store.db_path, seed_demo_data=config.store.seed_demo_data
            )
            orchestrator = ChatOrchestrator(config, store)
        self.orchestrator = orchestrator
        self.transcript: list[Turn] = []

    async def run(self):
        """Main REPL loop."""
        self._print_banner()
        self._print_status()

        while True:
            try:
                user_input = input(f"{BOLD}You:{RESET} ").strip()
            except (EOFError, KeyboardInterrupt):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue

            # Commands
            if user_input.lower() in ("exit", "quit", "/exit", "/quit"):
                print(f"{DIM}Goodbye!{RESET}")
                break
            if user_input.lower() in ("reset", "/reset"):
                self.transcript.clear()
                print(f"{DIM}[Conversation reset]{RESET}")
                continue
            if user_input.lower() in ("status", "/status"):
                self._print_status()
                continue
            if user_input.lower() in ("help", "/help"):
                self._print_help()
                continue

            reply = await self.send(user_input)
            print(f"\n{BOLD}{GREEN}Assistant:{RESET} {reply}")
            print()

    async def send(self, message: str) -> str:
        """Run one turn and extend the local transcript."""
        outcome = await self.orchestrator.run_turn(message, list(self.transcript))
        if outcome.state != TurnState.UNCONFIGURED:
            self.transcript.append(Turn(Speaker.USER, message))
            self.transcript.append(Turn(Speaker.ASSISTANT, outcome.text))
        return outcome.text

    def _print_status(self):
        completion = self.config.completion
        if self.orchestrator.is_configured():
            print(f"{DIM}[Connected: {completion.provider} {completion.model_name} at {completion.endpoint}]{RESET}")
        else:
            missing = ", ".join(completion.missing_settings()) or "client construction failed"
            print(f"{YELLOW}[Not configured: {missing}]{RESET}")

    def _print_banner(self):
        print(f"""
{BOLD}{CYAN}╔══════════════════════════════════════╗
║          Expense Assistant           ║
╚══════════════════════════════════════╝{RESET}
{DIM}Provider: {self.config.completion.provider}
Database: {self.config.store.db_path}{RESET}
""")

    def _print_help(self):
        print(f"""
{BOLD}Commands:{RESET}
  {CYAN}/reset{RESET}  - Clear the conversation
  {CYAN}/status{RESET} - Show backend configuration state
  {CYAN}/help{RESET}   - Show this help
  {CYAN}exit{RESET}    - Quit

{BOLD}Try:{RESET}
  Show my pending expenses
  Add a 45.50 meals expense for yesterday, team lunch
  Approve expense 3
""")
