"""Interactive CLI application."""
import logging
import os
import time
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from exam_prep.config import load_config
from exam_prep.dashboard import get_leaderboard, get_progress_label, get_student_stats
from exam_prep.db import DEFAULT_DB_PATH, init_db
from exam_prep.engine import grade_submission
from exam_prep.errors import ExamPrepError, NotFoundError
from exam_prep.history import list_attempts
from exam_prep.importer import import_file
from exam_prep.models import LETTERS, SUBJECTS
from exam_prep.progression import get_progress
from exam_prep.questions import get_test_questions, list_topics
from exam_prep.seed import is_seeded, seed_all
from exam_prep.students import add_student, find_student_by_username, get_student

console = Console()


def configure_logging(level: str | None = None) -> None:
    level = level or os.environ.get("EXAM_PREP_LOG_LEVEL", "WARNING")
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def show_welcome():
    console.print(Panel(
        "[bold]Exam Prep[/bold]\n[dim]Physics · Chemistry · Botany · Zoology[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("login", "Switch student"),
        ("test", "Take a test"),
        ("progress", "Stage, level, and topic progress"),
        ("history", "Past test attempts"),
        ("leaderboard", "N.POINTS ranking"),
        ("import", "Bulk import questions"),
        ("student", "Add a student"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def run_test_session(questions: list) -> list[dict]:
    """Ask each question and collect the answers as submitted values."""
    answers = []
    console.print(f"\n[bold]Test[/bold] — {len(questions)} questions  [dim](Enter to skip)[/dim]\n")
    for i, q in enumerate(questions, 1):
        console.print(f"[bold]Q{i}.[/bold] {q['question_text']}\n")
        letters = LETTERS[:len(q["options"])]
        for letter, option in zip(letters, q["options"]):
            console.print(f"  [cyan]{letter})[/cyan] {option}")
        started = time.monotonic()
        answer = Prompt.ask(
            "\nYour answer", choices=[l.lower() for l in letters], default="", show_choices=False,
        case_sensitive=False,
        )
        answers.append({
            "question_id": q["id"],
            "selected_value": answer.upper() or None,
            "time_spent": round(time.monotonic() - started, 1),
        })
        console.print()
    return answers


def show_result(result: dict) -> None:
    for i, r in enumerate(result["per_question_results"], 1):
        if r.get("not_found"):
            console.print(f"  Q{i}: [yellow]question not found[/yellow]")
        elif r["is_correct"]:
            console.print(f"  Q{i}: [green]Correct[/green]")
        elif r["selected_value"] is None:
            console.print(f"  Q{i}: [dim]Skipped[/dim] — answer [green]{r['correct_value']}[/green]")
        else:
            console.print(f"  Q{i}: [red]Incorrect[/red] — answer [green]{r['correct_value']}[/green]")
        if r["explanation"]:
            console.print(f"      [dim]{r['explanation']}[/dim]")
    color = "green" if result["passed"] else "red"
    console.print(Panel(
        f"Score: [bold]{result['score']}/{result['max_score']}[/bold] "
        f"([{color}]{result['score_percentage']}%[/{color}])\n"
        f"Correct {result['correct_count']} · Incorrect {result['incorrect_count']} · "
        f"Skipped {result['unanswered_count']}",
        title="PASSED" if result["passed"] else "NOT PASSED", border_style=color,
    ))
    progression = result.get("progression")
    if progression and progression["applied"]:
        console.print(
            f"[green]Advanced to {get_progress_label(progression['stage'], progression['level'])}![/green]"
        )
    topic = result.get("topic_progress")
    if topic:
        console.print(f"[cyan]Topic best: {topic['best_score']}% over {topic['attempt_count']} attempts[/cyan]")
    for error in result["errors"]:
        console.print(f"[yellow]Warning: {error}[/yellow]")


def cmd_login(db_path: str):
    username = Prompt.ask("Username")
    try:
        student = find_student_by_username(db_path, username)
    except NotFoundError:
        if not Confirm.ask(f"No student {username!r}. Create one?", default=True):
            return None
        name = Prompt.ask("Display name", default=username)
        institution = Prompt.ask("Institution", default="Default Institution")
        student = get_student(db_path, add_student(db_path, name, username, institution))
    console.print(f"[green]Logged in as {student.name}[/green]")
    return student.id


def cmd_test(db_path: str, student_id: int):
    subject = Prompt.ask("Subject", choices=list(SUBJECTS[:4]), default="physics")
    mode = Prompt.ask("Mode", choices=["practice", "assessment", "legacy"], default="practice")
    topic = None
    if mode == "legacy":
        current = get_progress(db_path, student_id, subject)
        console.print(f"[cyan]{subject.capitalize()}: {get_progress_label(current.stage, current.level)}[/cyan]")
        questions = get_test_questions(db_path, subject, stage=current.stage, level=current.level)
    else:
        topics = list_topics(db_path, subject)
        if not topics:
            console.print("[yellow]No topics available for this subject.[/yellow]")
            return
        topic = Prompt.ask("Topic", choices=topics, default=topics[0])
        count = IntPrompt.ask("Number of questions", default=10)
        questions = get_test_questions(db_path, subject, topic=topic, count=count)
    if not questions:
        console.print("[yellow]No questions available![/yellow]")
        return
    answers = run_test_session(questions)
    result = grade_submission(db_path, student_id, {
        "subject": subject,
        "mode": mode,
        "topic": topic,
        "answers": answers,
        "total_time": round(sum(a["time_spent"] for a in answers), 1),
    }, config=load_config(db_path))
    show_result(result)


def cmd_progress(db_path: str, student_id: int):
    student = get_student(db_path, student_id)
    table = Table(title=f"{student.name} — Subjects")
    table.add_column("Subject", style="cyan")
    table.add_column("Stage", justify="right")
    table.add_column("Level", justify="right")
    for subject in SUBJECTS[:4]:
        state = student.subjects.get(subject)
        stage, level = (state.stage, state.level) if state else (1, 1)
        table.add_row(subject.capitalize(), str(stage), str(level))
    console.print(table)

    if student.topics:
        topics = Table(title="Topics")
        topics.add_column("Subject", style="cyan")
        topics.add_column("Topic")
        topics.add_column("Best", justify="right")
        topics.add_column("Attempts", justify="right")
        topics.add_column("Status")
        for (subject, topic), tp in sorted(student.topics.items()):
            status = "[green]Completed[/green]" if tp.completed else "[yellow]In progress[/yellow]"
            topics.add_row(subject.capitalize(), topic, f"{tp.best_score}%", str(tp.attempt_count), status)
        console.print(topics)

    stats = get_student_stats(db_path, student_id)
    console.print(f"\n  Tests: [bold]{stats['tests_taken']}[/bold]  |  "
                  f"Passed: [bold]{stats['tests_passed']}[/bold]  |  "
                  f"Avg score: [bold]{stats['avg_score']}%[/bold]  |  "
                  f"Topics completed: [bold]{stats['topics_completed']}/{stats['topics_attempted']}[/bold]")


def cmd_history(db_path: str, student_id: int):
    attempts = list_attempts(db_path, student_id)
    if not attempts:
        console.print("[yellow]No tests taken yet.[/yellow]")
        return
    table = Table(title="Test History")
    table.add_column("Date")
    table.add_column("Subject", style="cyan")
    table.add_column("Mode")
    table.add_column("Topic / Level")
    table.add_column("Score", justify="right")
    table.add_column("Result")
    for a in attempts[:20]:
        where = a.topic or (get_progress_label(a.stage, a.level) if a.stage else "")
        result = "[green]Passed[/green]" if a.passed else "[red]Not passed[/red]"
        table.add_row((a.created_at or "")[:16], a.subject.capitalize(), a.mode, where, f"{a.score_percentage}%", result)
    console.print(table)


def cmd_leaderboard(db_path: str):
    config = load_config(db_path)
    table = Table(title="Leaderboard")
    table.add_column("#", justify="right")
    table.add_column("Student", style="cyan")
    table.add_column("Institution")
    table.add_column("Levels", justify="right")
    table.add_column("N.POINTS", justify="right")
    for rank, entry in enumerate(get_leaderboard(db_path, config.points_per_level, limit=20), 1):
        table.add_row(str(rank), entry["name"], entry["institution"], str(entry["levels_cleared"]), str(entry["n_points"]))
    console.print(table)


def cmd_import(db_path: str):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_file(db_path, file_path)
    console.print(f"[green]Imported {result['imported']} questions from {result['filename']}[/green]")
    for failure in result["failed"][:10]:
        console.print(f"  [red]Row {failure['index']}:[/red] {failure['error']}")


def cmd_student(db_path: str):
    name = Prompt.ask("Display name")
    username = Prompt.ask("Username")
    institution = Prompt.ask("Institution", default="Default Institution")
    student_id = add_student(db_path, name, username, institution)
    console.print(f"[green]Added student #{student_id}[/green]")


def main():
    configure_logging()
    db_path = os.environ.get("EXAM_PREP_DB", DEFAULT_DB_PATH)
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    show_welcome()
    student_id = None

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="test").strip().lower()
        try:
            if choice in ("test", "progress", "history") and student_id is None:
                student_id = cmd_login(db_path)
                if student_id is None:
                    continue
            if choice == "login":
                student_id = cmd_login(db_path) or student_id
            elif choice == "test":
                cmd_test(db_path, student_id)
            elif choice == "progress":
                cmd_progress(db_path, student_id)
            elif choice == "history":
                cmd_history(db_path, student_id)
            elif choice == "leaderboard":
                cmd_leaderboard(db_path)
            elif choice == "import":
                cmd_import(db_path)
            elif choice == "student":
                cmd_student(db_path)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Good luck on your exam![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except ExamPrepError as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
