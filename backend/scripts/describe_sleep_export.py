import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from dates import resolve_timezone
from settings import settings
from source_reader import ChunkReader
from xml_stream import SleepXMLScanner

EXPORT = sys.argv[1] if len(sys.argv) > 1 else "export.xml"

size = os.path.getsize(EXPORT)
print('File:', EXPORT)
print('Size (MB):', round(size / (1024*1024), 2))

scanner = SleepXMLScanner(
    tz=resolve_timezone(settings.import_timezone),
    max_pending=settings.xml_max_pending_bytes,
)

# stream scan; nothing is written to the database
with open(EXPORT, "rb") as f:
    reader = ChunkReader(
        f,
        total_bytes=size,
        chunk_size=settings.import_chunk_size,
        on_progress=lambda p: print(f"\r  {p:3d}%", end="", flush=True),
        interval_ms=1000,
    )
    for chunk in reader:
        scanner.feed(chunk)
entries = scanner.close()
print()

print('\nTotals:')
print('  Record elements:', scanner.records_seen)
print('  Countable sleep records:', scanner.sleep_records)
print('  Nights:', len(entries))
print('  Dropped unterminated buffers:', scanner.dropped_buffers)

if entries:
    durations = [e.duration_minutes for e in entries]
    print('\nDate range:')
    print('  earliest:', entries[0].date)
    print('  latest:  ', entries[-1].date)
    print('  average night (h):', round(sum(durations) / len(durations) / 60, 2))

    print('\nLast 10 nights:')
    for e in entries[-10:]:
        print(f'  {e.date}  {e.bedtime} -> {e.wake_time}  {e.duration_minutes:5d} min')
