"""Centralized user-facing text for noteweave."""

from __future__ import annotations

class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "noteweave – find related notes through an incremental embedding index."
    HELP_VAULT = "Vault directory containing the markdown notes."
    HELP_VERBOSE = "Emit debug logging."
    HELP_VERSION = "Show the version and exit."
    HELP_INDEX_RETRY = "Clear the failed-embeddings list and retry those notes."
    HELP_INDEX_FORCE = "Archive the current index file and re-embed every note."
    HELP_RELATED_NOTE = "Note path (relative to the vault) to find connections for."
    HELP_SEARCH_TEXT = "Free text to embed and match against the index."
    HELP_BLOCK_PATH = "Block path such as 'folder/note.md#Heading#Sub heading'."
    HELP_BLOCK_LIMIT = "Stop after this many lines."
    HELP_SET_API_KEY = "Persist an API key in ~/.noteweave/config.json."
    HELP_CLEAR_API_KEY = "Remove the stored API key."
    HELP_SET_MODEL = "Set the embedding model."
    HELP_SET_BASE_URL = "Set an OpenAI-compatible base URL."
    HELP_SET_RESULTS = "Set how many connections to return."
    HELP_SET_FILE_EXCLUSIONS = "Comma separated file matchers to skip."
    HELP_SET_FOLDER_EXCLUSIONS = "Comma separated folders to skip."
    HELP_SET_HEADER_EXCLUSIONS = "Comma separated headings whose sections are skipped."
    HELP_SET_PATH_ONLY = "Comma separated matchers embedded by title only."
    HELP_SET_SKIP_SECTIONS = "Embed whole notes only (true/false)."
    HELP_SET_FULL_PATH = "Show full note paths in results (true/false)."
    HELP_SET_LOG_RENDER = "Log a report after each run (true/false)."
    HELP_SET_LOG_RENDER_FILES = "Include embedded paths in the report (true/false)."
    HELP_TEST_API_KEY = "Send a tiny embedding request to check the API key."
    HELP_SHOW_CONFIG = "Show current configuration."

    ERROR_API_KEY_MISSING = (
        "An OpenAI API key is required to make connections. "
        "Configure it via `noteweave config --set-api-key <token>` or an environment variable."
    )
    ERROR_OPENAI_PREFIX = "OpenAI API request failed: "
    ERROR_NO_EMBEDDINGS = "OpenAI API returned no embeddings."
    ERROR_EMPTY_INPUT = "Embedding input must not be empty."
    ERROR_EMPTY_QUERY = "Search text must not be empty."
    ERROR_CONFIG_JSON_INVALID = "Config JSON must be an object."
    ERROR_CONFIG_VALUE_INVALID = "Config value for '{field}' is invalid."
    ERROR_BOOLEAN_INVALID = "Expected a boolean (true/false), got: {value}"
    ERROR_EMBEDDINGS_FOR = "Error getting embeddings for: {path}"
    ERROR_DOCUMENT_EXCLUDED = "excluded"
    ERROR_NOTE_MISSING = "Note not found in vault: {path}"
    ERROR_BLOCK_MISSING = "Block not found: {path}"
    ERROR_INDEX_LOAD = (
        "Failed to load the embeddings file. "
        "Run `noteweave index --force-refresh` to create a new one."
    )
    ERROR_INDEX_SHRINK = (
        "Warning: New embeddings file size is significantly smaller than existing "
        "embeddings file size. Aborting to prevent possible loss of embeddings data. "
        "New file size: {new_size} bytes. Existing file size: {existing_size} bytes. "
        "The candidate index was written to {side_file}."
    )

    INFO_INDEX_RUNNING = "Making connections for notes under {path}..."
    INFO_INDEX_SUMMARY = (
        "Embedded {new} item{plural}, removed {deleted} stale entr{deleted_plural}, "
        "{failed} failure{failed_plural}."
    )
    INFO_INDEX_FORCED = "Embeddings file force refreshed, new connections made."
    INFO_RETRY_NONE = "No failed notes to retry."
    INFO_NO_RESULTS = "No connections found."
    INFO_API_SAVED = "API key saved."
    INFO_API_CLEARED = "API key cleared."
    INFO_API_VALID = "API key is valid."
    INFO_API_INVALID = "API key is invalid."
    INFO_CONFIG_UPDATED = "Configuration updated."
    INFO_CONFIG_SUMMARY = (
        "API key set: {api}\n"
        "Model: {model}\n"
        "Base URL: {base_url}\n"
        "Results count: {results}\n"
        "Skip sections: {skip_sections}\n"
        "File exclusions: {file_exclusions}\n"
        "Folder exclusions: {folder_exclusions}\n"
        "Header exclusions: {header_exclusions}\n"
        "Path only: {path_only}\n"
        "Show full path: {show_full_path}\n"
        "Log render: {log_render} (files: {log_render_files})"
    )

    TABLE_TITLE = "Smart connections for {context}"
    TABLE_HEADER_INDEX = "#"
    TABLE_HEADER_SIMILARITY = "Similarity"
    TABLE_HEADER_LINK = "Connection"
