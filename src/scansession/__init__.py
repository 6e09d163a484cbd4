"""

Scanner Sessions

- DeviceLayer: the scanner service. Reports device arrival/removal, decoded data, property
  completions and errors as messages, and accepts property get/set requests that complete later.
  Implementations live outside this package.
- Session: the application's view of the device layer. Open it, tick receive_once() on a regular cadence
  (or let a ReceiveLoop do it), post requests with the post_* methods and close it.
- CommandQueue - serializes requests so only one is outstanding with the device layer at a time.
  Completions are matched back to their command by a correlation token carried in the property context.
  Failures are retried silently a bounded number of times before they are reported.
  Data confirmations jump the queue so a scanner gets its acknowledgement right after the command in flight.
- DeviceRegistry - the connected devices. A placeholder record stands in for an empty list
  when a no-device text is configured. Removing a device cancels its queued commands.
- DispatchLoop - takes one message per tick from the device layer and routes it to the registry,
  the queue or the listener, then sends the next queued command.
- SessionListener - the notifications an application receives. QueuedSessionListener
  moves delivery to a thread of the application's choosing, such as a UI thread.


More rough notes:

- a session moves closed -> opening -> open -> closing -> closed. Closing posts an abort that replaces
  all queued work, and the session is closed when the device layer answers with a terminate message.
- a failure to receive a message is terminal for the session.
- SessionConfig can be loaded from scansession*.cfg files, validated against scansession.schema.cfg.
"""
