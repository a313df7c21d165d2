"""Lua scripts that move dispatch records between broker collections atomically."""

# Shared helpers: drop ids from a finished-set together with their records, and
# check that a settle call comes from the claim that holds the current attempt.
_PURGE = """
local function purge(set_key, prefix, ids)
  for _, id in ipairs(ids) do
    redis.call('ZREM', set_key, id)
    redis.call('DEL', prefix .. ':job:' .. id)
  end
end

local function stale_claim(job_key, attempt)
  if attempt == '' then
    return false
  end
  return tonumber(redis.call('HGET', job_key, 'attempts')) ~= tonumber(attempt)
end
"""

# KEYS: waiting, completed, failed
# ARGV: prefix, task_id, payload, timeout, now
ENQUEUE = """
local job_key = ARGV[1] .. ':job:' .. ARGV[2]
local state = redis.call('HGET', job_key, 'state')
if state == 'waiting' or state == 'active' or state == 'delayed' then
  return 0
end
redis.call('ZREM', KEYS[2], ARGV[2])
redis.call('ZREM', KEYS[3], ARGV[2])
redis.call('DEL', job_key)
redis.call('HSET', job_key,
  'payload', ARGV[3], 'timeout', ARGV[4], 'state', 'waiting',
  'attempts', 0, 'enqueued_at', ARGV[5])
redis.call('RPUSH', KEYS[1], ARGV[2])
return 1
"""

# KEYS: waiting, active, delayed
# ARGV: prefix, now, lease_margin
CLAIM = """
local now = tonumber(ARGV[2])
local due = redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', ARGV[2])
for _, id in ipairs(due) do
  redis.call('ZREM', KEYS[3], id)
  redis.call('RPUSH', KEYS[1], id)
  redis.call('HSET', ARGV[1] .. ':job:' .. id, 'state', 'waiting')
end
while true do
  local id = redis.call('LPOP', KEYS[1])
  if not id then
    return false
  end
  local job_key = ARGV[1] .. ':job:' .. id
  local payload = redis.call('HGET', job_key, 'payload')
  if payload and redis.call('HGET', job_key, 'state') == 'waiting' then
    local timeout = tonumber(redis.call('HGET', job_key, 'timeout')) or 0
    local attempts = redis.call('HINCRBY', job_key, 'attempts', 1)
    redis.call('HSET', job_key, 'state', 'active', 'claimed_at', ARGV[2])
    redis.call('ZADD', KEYS[2], now + timeout + tonumber(ARGV[3]), id)
    return {id, payload, attempts}
  end
end
"""

# KEYS: active, completed
# ARGV: prefix, task_id, now, keep_count, keep_age, attempt ("" skips the check)
ACK = _PURGE + """
if stale_claim(ARGV[1] .. ':job:' .. ARGV[2], ARGV[6]) then
  return 0
end
if redis.call('ZREM', KEYS[1], ARGV[2]) == 0 then
  return 0
end
local now = tonumber(ARGV[3])
redis.call('HSET', ARGV[1] .. ':job:' .. ARGV[2], 'state', 'completed', 'finished_at', ARGV[3])
redis.call('ZADD', KEYS[2], now, ARGV[2])
purge(KEYS[2], ARGV[1], redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', now - tonumber(ARGV[5])))
local overflow = redis.call('ZCARD', KEYS[2]) - tonumber(ARGV[4])
if overflow > 0 then
  purge(KEYS[2], ARGV[1], redis.call('ZRANGE', KEYS[2], 0, overflow - 1))
end
return 1
"""

# KEYS: active, delayed, failed
# ARGV: prefix, task_id, now, error, max_attempts, base_delay_ms, max_delay_ms, failed_age,
#       attempt ("" skips the check)
RETRY = _PURGE + """
if stale_claim(ARGV[1] .. ':job:' .. ARGV[2], ARGV[9]) then
  return false
end
if redis.call('ZREM', KEYS[1], ARGV[2]) == 0 then
  return false
end
local job_key = ARGV[1] .. ':job:' .. ARGV[2]
local now = tonumber(ARGV[3])
local attempts = tonumber(redis.call('HGET', job_key, 'attempts')) or 1
redis.call('HSET', job_key, 'last_error', ARGV[4])
if attempts >= tonumber(ARGV[5]) then
  redis.call('HSET', job_key, 'state', 'failed', 'finished_at', ARGV[3])
  redis.call('ZADD', KEYS[3], now, ARGV[2])
  purge(KEYS[3], ARGV[1], redis.call('ZRANGEBYSCORE', KEYS[3], '-inf', now - tonumber(ARGV[8])))
  return 'failed'
end
local delay_ms = math.min(tonumber(ARGV[6]) * 2 ^ (attempts - 1), tonumber(ARGV[7]))
redis.call('HSET', job_key, 'state', 'delayed')
redis.call('ZADD', KEYS[2], now + delay_ms / 1000, ARGV[2])
return 'delayed'
"""
