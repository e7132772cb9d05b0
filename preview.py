from sqlmodel import create_engine, Session, select
from bridge.models import ChatMemory
from bridge.store import parse_history
from bridge.settings import settings
import sys

def print_transcripts(engine, session_id=None, out=sys.stdout):
    with Session(engine) as session:
        query = select(ChatMemory).order_by(ChatMemory.updated_at)
        if session_id is not None:
            query = query.where(ChatMemory.session_id == session_id)
        memories = session.exec(query).all()

    for memory in memories:
        print(f"{memory.session_id} (key {memory.api_key_id}, updated {memory.updated_at})", file=out)
        for turn in parse_history(memory.history_json):
            print(f"  {turn.role}: {turn.content}", file=out)
        print("------------", file=out)
    return len(memories)

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    engine = create_engine(settings.database_url)
    print_transcripts(engine, argv[0] if argv else None)

if __name__ == "__main__":
    main()
