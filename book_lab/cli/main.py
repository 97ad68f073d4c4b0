"""
Command-line interface for Book Lab.

This module provides a CLI over the same services the API exposes: notes,
topics, books, chapters, export, onboarding and backups.
"""

import argparse
import json
import os
import sys
from typing import Any, List, Optional

import yaml
from loguru import logger

from book_lab.core.config import DEFAULT_CONFIG_PATH, Settings, create_default_config, load_config
from book_lab.core.exceptions import BookLabError
from book_lab.services.gateway import LLMProvider
from book_lab.services.onboarding import complete_onboarding, is_onboarding_complete
from book_lab.services.service_factory import Services, create_services


def setup_cli():
    """Set up command-line interface."""
    parser = argparse.ArgumentParser(
        prog="book-lab",
        description="Book Lab CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  book-lab init                                        # Create config and database
  book-lab onboard --provider ollama                   # Use a local Ollama server
  book-lab notes process --file notes.txt              # Split, tag and store notes
  book-lab books create --title "My Book"              # Create a book
  book-lab chapters create --book 1 --title "Intro" --topic 2
  book-lab chapters write --id 1                       # Write a chapter from its outline
  book-lab export --book 1                             # Export a book to PDF
  book-lab api                                         # Start the API server
"""
    )

    # Global arguments
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Init command
    subparsers.add_parser("init", help="Create the config file and database")

    # Config command
    config_parser = subparsers.add_parser("config", help="Configure settings")
    config_parser.add_argument("--db-url", help="Set database URL")
    config_parser.add_argument("--log-level", help="Set log level")
    config_parser.add_argument("--export-dir", help="Set default export directory")
    config_parser.add_argument("--show", action="store_true", help="Show current config")

    # Onboard command
    onboard_parser = subparsers.add_parser("onboard", help="Choose the LLM provider")
    onboard_parser.add_argument("--provider", choices=[p.value for p in LLMProvider], help="LLM provider")
    onboard_parser.add_argument("--api-key", help="OpenAI API key")
    onboard_parser.add_argument("--ollama-url", help="Ollama server URL")
    onboard_parser.add_argument("--ollama-model", help="Ollama model name")
    onboard_parser.add_argument("--author", help="Default author name for new books")
    onboard_parser.add_argument("--status", action="store_true", help="Show onboarding status")

    # API command
    api_parser = subparsers.add_parser("api", help="Start API server")
    api_parser.add_argument("--host", type=str, help="Host to bind to")
    api_parser.add_argument("--port", type=int, help="Port to listen on")

    # Notes commands
    notes_parser = subparsers.add_parser("notes", help="Note operations")
    notes_subparsers = notes_parser.add_subparsers(dest="notes_command", help="Notes command")

    process_parser = notes_subparsers.add_parser("process", help="Split pasted text into tagged notes")
    process_parser.add_argument("--file", type=str, help="Text file to read (default: stdin)")
    process_parser.add_argument("--text", type=str, help="Text to process")

    notes_subparsers.add_parser("list", help="List notes")

    notes_delete_parser = notes_subparsers.add_parser("delete", help="Delete a note")
    notes_delete_parser.add_argument("--id", type=int, required=True, help="Note ID")

    # Topics commands
    topics_parser = subparsers.add_parser("topics", help="Topic operations")
    topics_subparsers = topics_parser.add_subparsers(dest="topics_command", help="Topics command")

    topics_subparsers.add_parser("list", help="List topics")

    topic_notes_parser = topics_subparsers.add_parser("notes", help="List the notes of a topic")
    topic_notes_parser.add_argument("--id", type=int, required=True, help="Topic ID")

    # Books commands
    books_parser = subparsers.add_parser("books", help="Book operations")
    books_subparsers = books_parser.add_subparsers(dest="books_command", help="Books command")

    books_subparsers.add_parser("list", help="List books")

    books_create_parser = books_subparsers.add_parser("create", help="Create a book")
    books_create_parser.add_argument("--title", type=str, required=True, help="Book title")
    books_create_parser.add_argument("--description", type=str, help="Book description")
    books_create_parser.add_argument("--author", type=str, help="Book author")

    books_delete_parser = books_subparsers.add_parser("delete", help="Delete a book and its chapters")
    books_delete_parser.add_argument("--id", type=int, required=True, help="Book ID")

    # Chapters commands
    chapters_parser = subparsers.add_parser("chapters", help="Chapter operations")
    chapters_subparsers = chapters_parser.add_subparsers(dest="chapters_command", help="Chapters command")

    chapters_list_parser = chapters_subparsers.add_parser("list", help="List the chapters of a book")
    chapters_list_parser.add_argument("--book", type=int, required=True, help="Book ID")

    chapters_create_parser = chapters_subparsers.add_parser("create", help="Add a chapter to a book")
    chapters_create_parser.add_argument("--book", type=int, required=True, help="Book ID")
    chapters_create_parser.add_argument("--title", type=str, required=True, help="Chapter title")
    chapters_create_parser.add_argument("--topic", type=int, help="Topic ID to draft the outline from")

    chapters_delete_parser = chapters_subparsers.add_parser("delete", help="Delete a chapter")
    chapters_delete_parser.add_argument("--id", type=int, required=True, help="Chapter ID")

    chapters_reorder_parser = chapters_subparsers.add_parser("reorder", help="Reorder the chapters of a book")
    chapters_reorder_parser.add_argument("--book", type=int, required=True, help="Book ID")
    chapters_reorder_parser.add_argument("--ids", type=str, required=True,
                                         help="Comma-separated chapter IDs in the new order")

    chapters_approve_parser = chapters_subparsers.add_parser("approve", help="Approve a chapter outline")
    chapters_approve_parser.add_argument("--id", type=int, required=True, help="Chapter ID")

    chapters_write_parser = chapters_subparsers.add_parser("write", help="Write a chapter from its outline")
    chapters_write_parser.add_argument("--id", type=int, required=True, help="Chapter ID")
    chapters_write_parser.add_argument("--topics", type=str, help="Comma-separated topic IDs for source notes")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export a book")
    export_parser.add_argument("--book", type=int, required=True, help="Book ID")
    export_parser.add_argument("--output-dir", type=str, help="Output directory")
    export_parser.add_argument("--format", choices=["pdf", "html"], default="pdf", help="Output format")

    # Backup commands
    backup_parser = subparsers.add_parser("backup", help="Database backups")
    backup_subparsers = backup_parser.add_subparsers(dest="backup_command", help="Backup command")

    backup_export_parser = backup_subparsers.add_parser("export", help="Write a backup file")
    backup_export_parser.add_argument("--path", type=str, required=True, help="Backup file path")

    backup_import_parser = backup_subparsers.add_parser("import", help="Restore from a backup file")
    backup_import_parser.add_argument("--path", type=str, required=True, help="Backup file path")

    return parser


def parse_ids(value: str) -> List[int]:
    """Parse a comma-separated list of integer IDs."""
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise ValueError(f"Invalid ID list: {value}")


def print_json(data: Any) -> None:
    if isinstance(data, list):
        data = [item.model_dump(mode="json") for item in data]
    elif hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    print(json.dumps(data, indent=2))


def save_config(config: Settings, config_path: str) -> None:
    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False)


def handle_init_command(args, config: Settings, config_path: str):
    """Handle init command."""
    services = create_services(config)
    services.close()

    print("Book Lab initialized")
    print(f"Config: {config_path}")
    print(f"Database: {config.db.url}")
    print("Run 'book-lab onboard' to choose an LLM provider")


def handle_config_command(args, config: Settings, config_path: str):
    """Handle config command."""
    if args.show:
        config_dict = config.model_dump()
        if args.json:
            print(json.dumps(config_dict, indent=2, default=str))
        else:
            print(yaml.dump(config_dict, default_flow_style=False))
        return

    changed = False

    if args.db_url:
        config.db.url = args.db_url
        changed = True

    if args.log_level:
        config.log.level = args.log_level.upper()
        changed = True

    if args.export_dir:
        config.export.output_dir = args.export_dir
        changed = True

    if changed:
        save_config(config, config_path)
        print(f"Configuration updated in {config_path}")
    else:
        print("No configuration changes specified")


def handle_onboard_command(args, services: Services):
    """Handle onboard command."""
    store = services.store

    if args.status or not args.provider:
        complete = is_onboarding_complete(store)
        provider = store.get_setting("llm_provider")
        if args.json:
            print_json({"complete": complete, "provider": provider})
        else:
            print(f"Onboarding complete: {'yes' if complete else 'no'}")
            print(f"LLM provider: {provider or 'not configured'}")
        return

    complete_onboarding(
        store,
        args.provider,
        api_key=args.api_key,
        ollama_url=args.ollama_url,
        ollama_model=args.ollama_model,
        author_name=args.author,
    )
    services.reconfigure()
    print(f"LLM provider set to {args.provider}")


def handle_api_command(args, services: Services):
    """Handle API command."""
    from book_lab.api.server import start as start_api

    if args.host:
        services.settings.api.host = args.host

    if args.port:
        services.settings.api.port = args.port

    logger.info(f"Starting API server on {services.settings.api.host}:{services.settings.api.port}")
    start_api(services)


def handle_notes_process_command(args, services: Services):
    """Handle notes process command."""
    if args.text is not None:
        text = args.text
    elif args.file:
        with open(args.file, "r", encoding="utf-8") as f:
            text = f.read()
    else:
        text = sys.stdin.read()

    result = services.pipeline.process_notes(text)

    if args.json:
        print_json(result)
        return

    print(f"Processed {result.processed_count} paragraphs")
    for item in result.results:
        print(f"Note {item.note_id} | Topics: {', '.join(item.topics) if item.topics else 'None'} | {item.content}")


def handle_notes_list_command(args, services: Services):
    """Handle notes list command."""
    notes = services.store.list_notes()
    if args.json:
        print_json(notes)
        return

    print(f"Found {len(notes)} notes:")
    for note in notes:
        preview = note.content[:60].replace("\n", " ")
        print(f"ID: {note.id} | {preview} | Topics: {', '.join(note.topics) if note.topics else 'None'}")


def handle_notes_delete_command(args, services: Services):
    services.store.delete_note(args.id)
    print(f"Note {args.id} deleted")


def handle_topics_list_command(args, services: Services):
    """Handle topics list command."""
    topics = services.store.list_topics()
    if args.json:
        print_json(topics)
        return

    print(f"Found {len(topics)} topics:")
    for topic in topics:
        print(f"ID: {topic.id} | {topic.name} | Notes: {topic.note_count}")


def handle_topics_notes_command(args, services: Services):
    topic = services.store.get_topic(args.id)
    notes = services.store.get_notes_by_topic(args.id)
    if args.json:
        print_json(notes)
        return

    print(f"Topic: {topic.name} ({len(notes)} notes)")
    for note in notes:
        print(f"ID: {note.id} | {note.content[:60]}")


def handle_books_list_command(args, services: Services):
    """Handle books list command."""
    books = services.store.list_books()
    if args.json:
        print_json(books)
        return

    print(f"Found {len(books)} books:")
    for book in books:
        author = f" by {book.author}" if book.author else ""
        print(f"ID: {book.id} | {book.title}{author} | Chapters: {book.chapter_count} | Words: {book.word_count}")


def handle_books_create_command(args, services: Services):
    author = args.author or services.store.get_setting("author_name")
    book = services.store.create_book(args.title, description=args.description, author=author)
    if args.json:
        print_json(book)
        return
    print(f"Created book {book.id}: {book.title}")


def handle_books_delete_command(args, services: Services):
    services.store.delete_book(args.id)
    print(f"Book {args.id} deleted")


def _print_chapters(chapters):
    for chapter in chapters:
        print(f"{chapter.chapter_number}. {chapter.title} (ID: {chapter.id}, status: {chapter.status})")


def handle_chapters_list_command(args, services: Services):
    """Handle chapters list command."""
    chapters = services.store.list_chapters(args.book)
    if args.json:
        print_json(chapters)
        return

    print(f"Found {len(chapters)} chapters:")
    _print_chapters(chapters)


def handle_chapters_create_command(args, services: Services):
    chapter = services.chapters.create_chapter(args.book, args.title, topic_id=args.topic)
    if args.json:
        print_json(chapter)
        return
    print(f"Created chapter {chapter.chapter_number}: {chapter.title} (ID: {chapter.id}, status: {chapter.status})")
    if chapter.outline:
        print()
        print(chapter.outline)


def handle_chapters_delete_command(args, services: Services):
    services.store.delete_chapter(args.id)
    print(f"Chapter {args.id} deleted")


def handle_chapters_reorder_command(args, services: Services):
    chapters = services.store.reorder_chapters(args.book, parse_ids(args.ids))
    if args.json:
        print_json(chapters)
        return
    print("Chapters reordered:")
    _print_chapters(chapters)


def handle_chapters_approve_command(args, services: Services):
    chapter = services.chapters.approve_outline(args.id)
    print(f"Outline approved for chapter {chapter.id}: {chapter.title}")


def handle_chapters_write_command(args, services: Services):
    topic_ids = parse_ids(args.topics) if args.topics else None
    chapter = services.chapters.write_chapter(args.id, topic_ids=topic_ids)
    if args.json:
        print_json(chapter)
        return
    print(f"Chapter {chapter.id} written ({len((chapter.content or '').split())} words)")


def handle_export_command(args, services: Services):
    """Handle export command."""
    result = services.exporter.export_book(args.book, output_dir=args.output_dir, fmt=args.format)
    if args.json:
        print_json(result)
        return
    print(f"Book exported to {result.path}")


def handle_backup_command(args, services: Services):
    """Handle backup export/import commands."""
    if args.backup_command == "export":
        path = services.database.backup_to(args.path)
        print(f"Backup created: {path}")
    else:
        services.database.restore_from(args.path)
        services.reconfigure()
        print(f"Backup restored from: {args.path}")


SUBCOMMAND_HANDLERS = {
    ("notes", "process"): handle_notes_process_command,
    ("notes", "list"): handle_notes_list_command,
    ("notes", "delete"): handle_notes_delete_command,
    ("topics", "list"): handle_topics_list_command,
    ("topics", "notes"): handle_topics_notes_command,
    ("books", "list"): handle_books_list_command,
    ("books", "create"): handle_books_create_command,
    ("books", "delete"): handle_books_delete_command,
    ("chapters", "list"): handle_chapters_list_command,
    ("chapters", "create"): handle_chapters_create_command,
    ("chapters", "delete"): handle_chapters_delete_command,
    ("chapters", "reorder"): handle_chapters_reorder_command,
    ("chapters", "approve"): handle_chapters_approve_command,
    ("chapters", "write"): handle_chapters_write_command,
    ("backup", "export"): handle_backup_command,
    ("backup", "import"): handle_backup_command,
}


def main(args=None, services: Optional[Services] = None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    parser = setup_cli()
    args = parser.parse_args(args)

    if args.debug:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.debug("Debug mode enabled")

    if not args.command:
        parser.print_help()
        return 0

    # Load config, creating a default one on first run
    config_path = args.config or DEFAULT_CONFIG_PATH
    if services is not None:
        config = services.settings
    elif os.path.exists(config_path):
        config = load_config(config_path)
    else:
        config = create_default_config(config_path)

    if services is None:
        # Import here to avoid circular imports
        from book_lab.__main__ import setup_logging
        setup_logging(config, level="DEBUG" if args.debug else None)

    if args.command == "init":
        handle_init_command(args, config, config_path)
        return 0
    if args.command == "config":
        handle_config_command(args, config, config_path)
        return 0

    if args.command in ("notes", "topics", "books", "chapters", "backup"):
        subcommand = getattr(args, f"{args.command}_command")
        handler = SUBCOMMAND_HANDLERS.get((args.command, subcommand))
        if handler is None:
            parser.error(f"Please specify a {args.command} command")
    elif args.command == "onboard":
        handler = handle_onboard_command
    elif args.command == "api":
        handler = handle_api_command
    elif args.command == "export":
        handler = handle_export_command
    else:
        parser.print_help()
        return 0

    owns_services = services is None
    if owns_services:
        services = create_services(config)

    try:
        handler(args, services)
    except (BookLabError, ValueError, FileNotFoundError) as e:
        logger.debug(f"Command failed: {e!r}")
        print(f"Error: {e}")
        return 1
    finally:
        if owns_services:
            services.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
