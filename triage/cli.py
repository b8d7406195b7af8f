"""
Console harness for the triage engine.

Chat interactively as a sample care subject, or replay a scripted list of answers
and print the outcome.

Run with: health-triage --profile dad --scenario "headache" "2 days" "8" "yes"
"""

import argparse

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.actions import ActionDispatcher
from triage.config import get_config
from triage.domain.models import Message, MessageType, PastSession, ProfileContext, TriageOutcome
from triage.observability import configure_logging
from triage.services.conversation import TriageSession

console = Console()

SAMPLE_PROFILES: dict[str, ProfileContext] = {
    "self": ProfileContext(
        id="self",
        name="You",
        relationship="me",
        age=34,
        allergies=("Penicillin",),
        blood_group="O+",
    ),
    "dad": ProfileContext(
        id="dad",
        name="Dad",
        relationship="father",
        age=65,
        conditions=("Hypertension",),
        medications=("Lisinopril", "Warfarin"),
        allergies=("Shellfish",),
        blood_group="B+",
        past_sessions=(
            PastSession(
                date="3 weeks ago",
                symptoms=("headache",),
                outcome="Recommended a video consultation",
                resolution="Resolved after adjusting blood pressure medication",
            ),
        ),
    ),
    "child": ProfileContext(id="child", name="Maya", relationship="child", age=7),
}

MESSAGE_STYLES: dict[MessageType, str] = {
    MessageType.CAREBOW: "cyan",
    MessageType.USER: "white",
    MessageType.SYSTEM: "yellow",
    MessageType.EMERGENCY: "bold red",
}


def print_message(message: Message) -> None:
    style = MESSAGE_STYLES[message.type]
    console.print(Panel(message.content, title=message.type.value, style=style))
    if message.reasoning:
        console.print(f"  Why: {message.reasoning}", style="dim")
    if message.profile_insight:
        console.print(f"  Profile: {message.profile_insight}", style="dim")


def print_outcome(outcome: TriageOutcome, dispatcher: ActionDispatcher) -> None:
    console.print(Panel(f"Triage level: {outcome.triage_level.value.upper()}", style="bold"))

    if outcome.assessment is not None:
        table = Table(title=f"Risk: {outcome.assessment.level.value} ({outcome.assessment.score})")
        table.add_column("Rule", style="cyan")
        table.add_column("Points", style="magenta")
        table.add_column("Explanation", style="white")
        for firing in outcome.assessment.reasoning:
            table.add_row(firing.rule_id, str(firing.points), firing.explanation)
        console.print(table)

    if outcome.recommendation is not None:
        rec = outcome.recommendation
        console.print(f"Recommendation: {rec.care_type} ({rec.urgency})", style="green")

    actions = Table(title="Actions")
    actions.add_column("Label", style="cyan")
    actions.add_column("Action id", style="magenta")
    actions.add_column("Intent", style="yellow")
    for action in (outcome.cta.primary, outcome.cta.secondary, outcome.cta.tertiary):
        if action is None:
            continue
        intent = dispatcher.dispatch(action.action_id).unwrap()
        actions.add_row(action.label, action.action_id.value, intent.target or intent.summary)
    console.print(actions)
    if outcome.cta.hint:
        console.print(outcome.cta.hint, style="italic")


def run_session(session: TriageSession, answers: list[str] | None) -> None:
    for message in session.transcript:
        print_message(message)

    scripted = iter(answers) if answers is not None else None
    while not session.is_finished:
        if scripted is not None:
            utterance = next(scripted, None)
            if utterance is None:
                console.print("Scenario ended before the conversation finished", style="yellow")
                return
            console.print(f"> {utterance}", style="bold")
        else:
            utterance = console.input("[bold]> [/bold]")
        for reply in session.send(utterance):
            print_message(reply)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="health-triage", description="Personalized health triage conversation"
    )
    parser.add_argument("--profile", choices=sorted(SAMPLE_PROFILES), default="self")
    parser.add_argument(
        "--scenario", nargs="+", metavar="ANSWER", help="Replay these answers instead of chatting"
    )
    parser.add_argument(
        "--propose", metavar="TREATMENT", help="Check a treatment against the profile afterwards"
    )
    parser.add_argument(
        "--decline", action="store_true", help="Decline the recommendation once it is given"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config)

    session = TriageSession(SAMPLE_PROFILES[args.profile], privacy_notice=True)
    console.print(Panel("🩺 Personalized Health Triage", style="bold blue"))

    try:
        run_session(session, args.scenario)
    except (KeyboardInterrupt, EOFError):
        console.print("\n👋 Session ended", style="yellow")
        return 1

    if args.propose:
        session.propose_treatment(args.propose)
        print_message(session.transcript[-1])

    if session.is_finished:
        print_outcome(session.outcome(), ActionDispatcher(config))
        if args.decline:
            try:
                print_message(session.decline_recommendation())
            except ValueError:
                console.print("Self-care was recommended; nothing to decline", style="yellow")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
