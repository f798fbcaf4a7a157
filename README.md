# dialogtree

A command-line AI chat client. It sends a prompt to an OpenAI-compatible
chat-completions endpoint (the address is `dialogtree.chat_ai.BASE_URL`) and
prints the answer to the terminal as it streams in. It can also hold a short
conversation whose recent turns and running summary are kept in Redis, create
the tables for tree-structured dialogs in a SQL database, and start a small
Flask server.

## Installation

```
pip install .
```

The database commands talk to PostgreSQL (`source: pgsql`) or MySQL
(`source: mysql`) through SQLAlchemy. The driver itself is not a dependency of
this package; install the one SQLAlchemy uses by default for your server
(for example `psycopg2` for PostgreSQL) yourself.

## Configuration

Every command reads `config.yaml` from the current directory. If the file is
missing or is not valid YAML, `dialogtree` prints the error and exits with
status 1. Keys are camelCase; missing keys take empty or zero values.

```yaml
system:
  mode: debug          # "debug" prints extra diagnostic lines in the terminal
  ip: 127.0.0.1        # empty means localhost
  port: "8080"
  env: dev
  ginMode: release     # "" or "debug" turns on Flask debug mode, "test" testing mode
logrus:
  app: dialogtree      # log file name
  dir: logs            # log directory
db:
  name: master
  user: user
  password: password
  host: localhost
  port: 5432
  dbname: dialogtree
  debug: false
  source: pgsql        # pgsql or mysql
redis:
  addr: localhost:6379
  password: password
  db: 0
ai:
  enable: true
  nickname: assistant
  avatar: ""
  abstract: ""
  chatAnywhere:
    model: gpt-4o      # model used for chat; also shown as the assistant's label
    secretKey: secret
  backendAi:
    model: gpt-3.5-turbo
    secretKey: secret
```

The system prompts are read from `dialogtree/prompts/prompt_chat.prompt` and
`dialogtree/prompts/prompt_summarize.prompt` inside the installed package. The
package does not ship these files; when one is missing, the empty string is
sent as the system prompt.

## Usage

### One question

```
dialogtree "What is a B-tree?"
echo "Summarise this" | dialogtree
dialogtree
```

When standard input is a pipe it is read as the prompt. Otherwise the
arguments, joined by spaces, are the prompt; with no arguments a prompt is
shown and one line is read. An empty prompt prints `No prompt provided`.
The service answering 429 is reported as a rate-limit error, any other status
than 200 as a service error; both end with exit status 1.

### Chit-chat with short memory

```
dialogtree chitchat
dialogtree chitchat -t "Hello"
```

Aliases: `c`, `chat`. `-t/--text` (or the first extra word) is sent as the
opening message. Each further line you type is sent until you type `exit` or
an empty line. Every message is prefixed with the running summary and the
last three exchanges. The model is asked, through the summarize prompt, to end
its answer with the marker `^¥&` followed by a summary; the text before the
marker is printed, the summary is stored. History lives in Redis under
`cc_sum_<key>`, `cc_his_pmt_<key>` and `cc_his_ans_<key>` for 12 hours, with a
fresh random key per session, and is deleted when the session ends.

### Dialogs

```
dialogtree dialog list
dialogtree dialog enter
dialogtree dialog recent
dialogtree dialog
```

Aliases: `dialog`/`d`; `list`/`l`/`ls`/`li`/`show`; `enter`/`e`/`en`/`i`/`in`;
`recent`/`r`/`re`/`c`/`ch`. The subcommands accept `-t/--text` and
`-l/--li/--list`, which are not used yet. `dialog` on its own sets up logging,
the database and Redis, then behaves like `recent`.

### Database tables

```
dialogtree migrate
```

Aliases: `m`, `db`. Sets up logging, connects to the database (creating it
with `CREATE DATABASE <dbname> WITH ENCODING 'UTF8'` if the server says it does
not exist), connects to Redis, and creates any missing tables:
`category_models`, `session_models`, `dialog_models`, `conversation_models`
and `image_models`.

### Web server

```
dialogtree web
```

Alias: `w`. Serves files from `./uploads` under `/uploads` on
`system.ip:system.port`; the API lives under `/api`.

### Logs

Commands that set up logging write to standard output and to
`<logrus.dir>/<YYYY-MM-DD>/<logrus.app>.log` (mode 0600), switching to a new
directory when the day changes.

## Using it from Python

- `dialogtree.config`: `read_conf`, `set_conf` (writes `settings.yaml`) and the
  `Config` dataclasses, with `Config.from_dict` / `Config.to_dict`,
  `SystemConfig.addr()` and `DBConfig.dsn()` / `dsn_without_db()`.
- `dialogtree.chat_ai`: `ChatAnywhereClient` (`chat_stream`, `chat_stream_sum`,
  `summarize`), `StreamSplitter`, `iter_stream`, `parse_stream_line`,
  `build_history_message`, `preprocess_from_cache`, `extract_json`.
- `dialogtree.redis_cache`: `ChitChatCache` and `init_redis`.
- `dialogtree.models`: SQLAlchemy models and `migrate_db(engine)`;
  `dialogtree.database`: `init_db`, `create_db`, `engine_url`.
- `dialogtree.responses`: JSON envelopes (`success`, `fail_with_msg`,
  `with_list`, ...) and server-sent event strings (`sse_success`, `sse_fail`).
- `dialogtree.web`: `create_app`, `run`, and the request-binding decorators
  `bind_json`, `bind_query`, `bind_uri`, which put the bound object in
  `flask.g.req`.

## What it does not do

- Chats are not saved to the database. The tables exist, but no command reads
  or writes dialogs, sessions or conversations.
- `dialog list` shows three fixed sample entries (`对话1`, `对话2`, `对话3`),
  `dialog enter` accepts a number from 1 to 16, and both then only echo what
  you type back to you. `dialog recent` prints a single line. None of them
  contact the chat service.
- The web server has no API routes: `/api` is empty and only `/uploads` serves
  anything.