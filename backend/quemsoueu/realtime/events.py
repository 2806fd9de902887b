# Client -> server
ROOM_CREATE = "room:create"
ROOM_JOIN = "room:join"
ROOM_LEAVE = "room:leave"
GAME_START = "game:start"
ANSWER_SEND = "answer:send"
ROUND_SKIP = "round:skip"

# Server -> client
ROOM_STATE = "room:state"
ROOM_ERROR = "room:error"
COUNTDOWN_START = "game:countdown:start"
ROUND_START = "round:start"
ROUND_REVEAL = "round:reveal"
ANSWER_FEEDBACK = "answer:feedback"
GAME_FINAL = "game:final"
