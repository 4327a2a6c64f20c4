'''
This package reconstructs user sessions from web server access logs and
computes usage statistics and a page transition graph over them.

The basic workflow is:

store = LogStore()
for chunk in readChunks( sources ):
  for line in splitLines( chunk ):
    record = parser.parse_line( store.symbols, line )
    completed_sessions = session_states.addRecord( record )
store.sessions += dropBots( completed_sessions + session_states.flush() )
usage = store.usage_stats_by( "path", options )
graph = store.usage_transfer_graph( options, 8, "", "" )

Every string field of a record is interned in the store's SymbolTable; records,
sessions and statistics refer to strings by integer id. A session is the
activity of one (address, user agent) pair, closed after max_age seconds
without a page view. Requests for style sheets, scripts, fonts and images are
counted but are not page views.
'''
