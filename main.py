from fastapi import FastAPI, BackgroundTasks, Depends, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import create_engine
from bridge.settings import settings
from bridge.logging_config import setup_logging, get_logger
from bridge.models import ChatRequest
from bridge.store import DataStore, init_db, append_turns
from bridge.assistant import LLMAssistant, build_assistant
import statsd
import time

setup_logging(settings.log_level)
logger = get_logger("bridge")

app = FastAPI()
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, connect_args=connect_args)
metrics = statsd.StatsClient(host=settings.graphite_host, port=settings.graphite_port, prefix=settings.metrics_prefix)

# create all tables
init_db(engine)

store = DataStore(engine=engine, metrics=metrics)
assistant = build_assistant(settings, metrics)

# the widget is embedded on arbitrary customer sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"]
)

def get_store() -> DataStore:
    return store

def get_assistant() -> LLMAssistant:
    return assistant

def get_metrics() -> statsd.StatsClient:
    return metrics

def resolve_session_id(session_id, store: DataStore) -> str:
    if not session_id or session_id == "null":
        return store.generate_session_id()
    return session_id

@app.get("/")
def _hello_world():
    return "Hello World"

@app.post("/client-widget-bridge")
def _client_widget_bridge(
    body: ChatRequest,
    background_tasks: BackgroundTasks,
    api_key: str = "",
    store: DataStore = Depends(get_store),
    assistant: LLMAssistant = Depends(get_assistant),
    metrics: statsd.StatsClient = Depends(get_metrics),
):
    metrics.incr("bridge.request")

    # time it starts handling a request
    start_time = time.time()

    valid, config, plan = store.check_access(api_key)
    if not valid or config is None:
        metrics.incr("bridge.denied")
        return Response(status_code=403)

    session_id = resolve_session_id(body.session_id, store)
    history = store.fetch_history(session_id)
    history_loaded = history is not None
    if not history_loaded:
        history = []
    metrics.incr("continue_session" if history else "start_session")

    reply = assistant.get_response(history, body.message, config.context, config.manual_faqs)

    # neither write may hold up or fail the reply
    background_tasks.add_task(store.insert_log, config.id, "message", {"session_id": session_id})
    if history_loaded:
        background_tasks.add_task(
            store.upsert_history, config.id, session_id,
            append_turns(history, body.message, reply, limit=settings.history_limit)
        )
    else:
        # saving now would replace the stored transcript with only this exchange
        logger.warning("not saving session %s, its stored history could not be read", session_id)

    logger.info("answered session %s for key %s (%s plan)", session_id, config.id, plan)

    # log time it took to handle request
    metrics.timing("bridge.request.timed", (time.time() - start_time) * 1000)

    return { "response": reply, "session_id": session_id }

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
