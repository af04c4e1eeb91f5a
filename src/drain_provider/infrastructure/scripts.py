"""Central registry for Redis Lua scripts used by the voucher store.

Scripts are registered at application startup for EVALSHA and make every
multi-key mutation of the store atomic relative to readers.

Return Code Conventions:
    Scripts returning a status use a two-element array ``{code, payload}``:

    - 0: Stale - The stored channel's last nonce no longer matches the nonce
         the caller read (another commit won the race). The payload holds the
         current channel JSON, or an empty string if the channel is missing.

    - 1: Success saved - The payload holds the JSON that was written.

    "append_voucher" reuses code 0 when the voucher already exists, returning
    the stored voucher JSON.

Amounts and nonces are stored as decimal strings, so scripts compare them as
strings and never do arithmetic on them, except for the earnings counter which
Redis keeps as a 64-bit integer via INCRBY.
"""

PROVIDER_SCRIPTS = {
    "commit_voucher": """
        local channel_key = KEYS[1]
        local voucher_key = KEYS[2]
        local vouchers_all_key = KEYS[3]
        local channel_unclaimed_key = KEYS[4]
        local channels_unclaimed_key = KEYS[5]
        local channels_all_key = KEYS[6]
        local earned_key = KEYS[7]

        local state_json = ARGV[1]
        local voucher_json = ARGV[2]
        local expected_last_nonce = ARGV[3]
        local member = ARGV[4]
        local received_ts = tonumber(ARGV[5])
        local created_ts = tonumber(ARGV[6])
        local channel_id = ARGV[7]
        local charged = ARGV[8]

        local current_raw = redis.call('GET', channel_key)
        local current_last_nonce = ''
        if current_raw then
            local current = cjson.decode(current_raw)
            local last = current.last_voucher
            if last and last ~= cjson.null then
                current_last_nonce = tostring(last.nonce)
            end
        end

        if current_last_nonce ~= expected_last_nonce then
            return {0, current_raw or ''}
        end

        redis.call('SET', voucher_key, voucher_json)
        redis.call('SET', channel_key, state_json)

        redis.call('ZADD', vouchers_all_key, received_ts, member)
        redis.call('ZADD', channel_unclaimed_key, received_ts, member)
        redis.call('ZADD', channels_unclaimed_key, received_ts, channel_id)
        redis.call('ZADD', channels_all_key, 'NX', created_ts, channel_id)

        if charged ~= '0' then
            redis.call('INCRBY', earned_key, charged)
        end

        return {1, state_json}
    """,
    "put_channel": """
        local channel_key = KEYS[1]
        local channels_all_key = KEYS[2]

        redis.call('SET', channel_key, ARGV[1])
        redis.call('ZADD', channels_all_key, 'NX', tonumber(ARGV[2]), ARGV[3])

        return {1, ARGV[1]}
    """,
    "mark_claimed": """
        -- ARGV[1] channel id, then alternating voucher member / voucher JSON
        -- pairs. The channel's last voucher is updated in place only when it
        -- is one of the claimed members, so a commit that landed after the
        -- caller read the vouchers is never overwritten.
        local channel_unclaimed_key = KEYS[1]
        local channels_unclaimed_key = KEYS[2]
        local channel_key = KEYS[3]
        local voucher_prefix = KEYS[4]

        local channel_id = ARGV[1]

        local claimed = {}
        local updated = 0
        for i = 2, #ARGV, 2 do
            local member = ARGV[i]
            if redis.call('ZREM', channel_unclaimed_key, member) == 1 then
                redis.call('SET', voucher_prefix .. member, ARGV[i + 1])
                claimed[member] = ARGV[i + 1]
                updated = updated + 1
            end
        end

        if redis.call('ZCARD', channel_unclaimed_key) == 0 then
            redis.call('ZREM', channels_unclaimed_key, channel_id)
        end

        local current_raw = redis.call('GET', channel_key)
        if current_raw then
            local current = cjson.decode(current_raw)
            local last = current.last_voucher
            if last and last ~= cjson.null then
                local voucher_json = claimed[channel_id .. ':' .. tostring(last.nonce)]
                if voucher_json then
                    current.last_voucher = cjson.decode(voucher_json)
                    redis.call('SET', channel_key, cjson.encode(current))
                end
            end
        end

        return updated
    """,
    "append_voucher": """
        local voucher_key = KEYS[1]
        local vouchers_all_key = KEYS[2]
        local channel_unclaimed_key = KEYS[3]
        local channels_unclaimed_key = KEYS[4]

        if redis.call('EXISTS', voucher_key) == 1 then
            return {0, redis.call('GET', voucher_key)}
        end

        local received_ts = tonumber(ARGV[2])
        redis.call('SET', voucher_key, ARGV[1])
        redis.call('ZADD', vouchers_all_key, received_ts, ARGV[3])
        if ARGV[5] == '0' then
            redis.call('ZADD', channel_unclaimed_key, received_ts, ARGV[3])
            redis.call('ZADD', channels_unclaimed_key, received_ts, ARGV[4])
        end

        return {1, ARGV[1]}
    """,
}
